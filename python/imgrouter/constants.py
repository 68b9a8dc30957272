"""
Constants used throughout the image router application.
"""

# Application info
APP_NAME = "ImgRouter"
APP_VERSION = "0.1.0"
APP_DESCRIPTION = "OpenAI-compatible chat gateway for VolcEngine, Gitee and ModelScope image generation"

# API Paths
API_PREFIX = "/v1"
HEALTH_PATH = "/health"
CHAT_COMPLETIONS_PATH = "/chat/completions"

# Headers
AUTH_HEADER = "Authorization"
CONTENT_TYPE_HEADER = "Content-Type"
USER_AGENT_HEADER = "User-Agent"
REQUEST_ID_HEADER = "X-Request-ID"
MODELSCOPE_ASYNC_HEADER = "X-ModelScope-Async-Mode"
MODELSCOPE_TASK_TYPE_HEADER = "X-ModelScope-Task-Type"
USER_AGENT = f"{APP_NAME}/{APP_VERSION}"

# Content types
JSON_CONTENT_TYPE = "application/json"
STREAM_CONTENT_TYPE = "text/event-stream"

# Timeouts (in seconds)
DEFAULT_REQUEST_TIMEOUT = 120.0
IMAGE_FETCH_TIMEOUT = 10.0

# Image limits
MAX_IMAGE_BYTES = 10 * 1024 * 1024

# Async task polling
TASK_POLL_INTERVAL = 5.0
TASK_MAX_POLL_ATTEMPTS = 60
DEFAULT_TASK_TYPE = "image_generation"
DEFAULT_UPLOAD_FIELD = "image"

# Prompt used when the caller sends none
DEFAULT_PROMPT = "A beautiful scenery"
EMPTY_RESULT_MESSAGE = "Image generation returned no images."

# Telemetry
TELEMETRY_SERVICE_NAME = "imgrouter"
TELEMETRY_VERSION = APP_VERSION

# Provider names
PROVIDER_VOLCENGINE = "volcengine"
PROVIDER_GITEE = "gitee"
PROVIDER_MODELSCOPE = "modelscope"

# Logo for CLI
LOGO = r"""
  ██ ███    ███  ██████  ██████   ██████  ██    ██ ████████ ███████ ██████
  ██ ████  ████ ██       ██   ██ ██    ██ ██    ██    ██    ██      ██   ██
  ██ ██ ████ ██ ██   ███ ██████  ██    ██ ██    ██    ██    █████   ██████
  ██ ██  ██  ██ ██    ██ ██   ██ ██    ██ ██    ██    ██    ██      ██   ██
  ██ ██      ██  ██████  ██   ██  ██████   ██████     ██    ███████ ██   ██
"""
