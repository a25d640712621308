"""
Input bounds and defaults shared by request validation and the CLI.
"""

# Query text bounds (characters, after sanitizing)
MIN_QUERY_LENGTH = 3
MAX_QUERY_LENGTH = 500

# Brand, alias and competitor names
MAX_NAME_LENGTH = 100

# Brand domain, e.g. "acme.com"
MAX_DOMAIN_LENGTH = 200

# Error messages returned across the invocation boundary
MAX_ERROR_LENGTH = 200

# DataForSEO location codes (2840 = United States)
DEFAULT_LOCATION_CODE = 2840
MIN_LOCATION_CODE = 1
MAX_LOCATION_CODE = 99999

# Providers queried when a request does not name any
DEFAULT_PROVIDER_IDS = (
    "chatgpt",
    "claude",
    "gemini",
    "perplexity",
    "google_ai_overview",
)

# Delay between successive generative-provider calls in one audit (seconds)
DEFAULT_STAGGER_SECONDS = 2.5

# Whole-invocation timeout (seconds)
DEFAULT_AUDIT_TIMEOUT_SECONDS = 180.0

# Top-N sizes for merged lists
DEFAULT_TOP_SOURCES = 10
DEFAULT_TOP_COMPETITORS = 5

# Instruction appended to generative queries when prompt augmentation is on
PROMPT_AUGMENTATION = (
    "\n\nImportant: Please provide specific recommendations with actual "
    "business names, websites, or sources. Include URLs where possible. "
    "Do not ask clarifying questions - provide direct answers with specific "
    "options."
)
