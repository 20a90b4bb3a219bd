"""Centralized defaults, URLs and timing constants."""

# Target sites
OVERLEAF_URL = "https://www.overleaf.com/project"
OVERLEAF_TAB_FRAGMENT = "overleaf.com"

AI_CHAT_URLS = {
    "chatgpt": "https://chatgpt.com/",
    "gemini": "https://gemini.google.com/app",
    "claude": "https://claude.ai/new",
}

# Browser
DEFAULT_BROWSER_APP = "Google Chrome"
DEFAULT_DEVTOOLS_HOST = "127.0.0.1"
DEFAULT_DEVTOOLS_PORT = 9222

# Paste behavior
DEFAULT_TARGET_FILE = "references.bib"

# GitHub sync
DEFAULT_COMMIT_MESSAGE = "latex updated"

# Template projects cloned by clone-template, by template id
CLONE_TEMPLATES = {
    "TemplateA": "https://www.overleaf.com/project/69219bb392c145fa8907c298",
    "TemplateB": "https://www.overleaf.com/project/6920e848f448138c4e50a1cf",
    "TemplateC": "https://www.overleaf.com/project/6920e848f448138c4e50a1d0",
}

# LaTeX table snippets
DEFAULT_TABLE_SIZE = 3
MAX_TABLE_SIZE = 20

# Timeouts (seconds)
DEFAULT_SCRIPT_TIMEOUT = 30.0
DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_COMPILE_TIMEOUT = 60.0
DEFAULT_PAGE_LOAD_TIMEOUT = 20.0
DEFAULT_STEP_DELAY = 0.5

# Page scripts longer than this travel as indirect payload files
INLINE_SCRIPT_LIMIT = 1024

# Windows command lines are capped at 32767 characters; leave headroom for flags
MAX_ENCODED_COMMAND_LENGTH = 30000
