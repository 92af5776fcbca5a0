"""
Constants for the Cerb client library.
Header names and endpoints follow the Cerb REST API authentication docs.
"""

# HTTP Headers
HEADER_DATE = "Date"
HEADER_CERB_AUTH = "Cerb-Auth"
HEADER_CONTENT_TYPE = "Content-Type"

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

# Envelope
STATUS_FIELD = "__status"
STATUS_SUCCESS = "success"
SUCCESS_MARKER = b'"__status":"success"'

# Endpoints (relative to the REST base URL)
ENDPOINT_SEARCH = "records/{record}/search.json"
ENDPOINT_CREATE = "records/{record}/create.json"
ENDPOINT_RECORD = "records/{record}/{id}.json"
ENDPOINT_PARSER = "parser/parse.json"

# Record contexts
CONTEXT_TICKET = "cerberusweb.contexts.ticket"
CONTEXT_APP = "cerberusweb.contexts.app"

# Default configuration values
DEFAULT_CONFIG = {
    'timeout': None,     # passed to the transport; no limit unless set
    'page_limit': 100,   # results per search page
}

MAX_PAGE_LIMIT = 250  # enforced by the server
DEFAULT_CREDS_PATH = "~/.config/cerb/creds.json"
