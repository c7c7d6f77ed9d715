API_URL = "https://api.github.com"
WEB_HOSTS = ("github.com", "www.github.com")

SIDECAR_NAME = ".github-dl.json"
SIDECAR_VERSION = 1
TEMP_PREFIX = ".github-dl-tmp."

DEFAULT_CONCURRENCY = 5
DEFAULT_TIMEOUT = 30.0
MAX_RATE_LIMIT_WAIT = 3660  # seconds; the primary limit resets hourly

USER_AGENT = "github-dl"
