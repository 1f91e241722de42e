"""Constants for the Yeelight LAN integration."""

DOMAIN = "yeelight_lan"

# Control (TCP)
DEFAULT_PORT = 55443
LINE_TERMINATOR = b"\r\n"
RECV_BUFFER_SIZE = 65536

# Discovery (UDP multicast)
MULTICAST_ADDRESS = "239.255.255.250"
MULTICAST_PORT = 1982
MULTICAST_TTL = 2
DISCOVERY_BUFFER_SIZE = 2048
SEARCH_MESSAGE = (
    "M-SEARCH * HTTP/1.1\r\n"
    f"HOST: {MULTICAST_ADDRESS}:{MULTICAST_PORT}\r\n"
    'MAN: "ssdp:discover"\r\n'
    "ST: wifi_bulb\r\n"
    "\r\n"
)

# Timeouts (seconds)
TIMEOUT_DISCOVERY = 5.0
TIMEOUT_QUICK_SCAN = 3.0
TIMEOUT_CONNECT = 5.0
TIMEOUT_REQUEST = 10.0

# Rate limiting
MAX_REQUESTS_PER_WINDOW = 60
RATE_LIMIT_WINDOW = 60.0

# Notifications for a property are ignored this long after a local command
COMMAND_COOLDOWN = 2.0

# Polling interval (seconds)
DEFAULT_SCAN_INTERVAL = 5
MIN_SCAN_INTERVAL = 1
MAX_SCAN_INTERVAL = 300

# Schedule tick cadence (seconds)
SCHEDULE_INTERVAL = 60

# Transition effect
EFFECT_SMOOTH = "smooth"
DEFAULT_DURATION = 500

# Value ranges
MIN_BRIGHTNESS = 1
MAX_BRIGHTNESS = 100
MIN_COLOR_TEMP_KELVIN = 2700
MAX_COLOR_TEMP_KELVIN = 6500
MIN_RGB = 0
MAX_RGB = 0xFFFFFF

# cron type 0 is the power-off timer
CRON_POWER_OFF = 0

STATE_PROPERTIES = ["power", "bright", "ct", "bg_power", "bg_bright", "bg_rgb"]
PROBE_PROPERTIES = ["model", "name", "fw_ver"]

# Config entry keys
CONF_FIXTURE_ID = "id"
CONF_MODEL = "model"
CONF_FW_VER = "fw_ver"
CONF_SUPPORT = "support"
CONF_SCHEDULES_ENABLED = "schedules_enabled"

# Storage
STORAGE_VERSION = 1
STORAGE_KEY = f"{DOMAIN}.settings"

# Services
SERVICE_APPLY_PROFILE = "apply_profile"
SERVICE_SET_SLEEP_TIMER = "set_sleep_timer"
SERVICE_CANCEL_SLEEP_TIMER = "cancel_sleep_timer"
SERVICE_SAVE_AS_DEFAULT = "save_as_default"
SERVICE_TURN_OFF_ALL = "turn_off_all"
SERVICE_SET_SCHEDULE_ENABLED = "set_schedule_enabled"
SERVICE_SAVE_PROFILE = "save_profile"

ATTR_PROFILE_ID = "profile_id"
ATTR_PROFILE_NAME = "profile"
ATTR_MINUTES = "minutes"
ATTR_ENTRY_ID = "entry_id"
ATTR_SCHEDULE = "schedule"
ATTR_ENABLED = "enabled"
ATTR_ICON = "icon"
