# fetch_pipeline/config_runtime_profiles.py
"""
Fetch profiles:
Define named fetcher settings.
Used by run_fetch.py to construct FetcherConfig.
"""

FETCH_PROFILES = {
    "default": {
        "user_agents_file": "user-agents.txt",
        "headers": {},
        "connect_timeout_ms": 5000,
        "read_timeout_ms": 10000,
        "content_limit": 100 * 1024 * 1024,
    },

    # Small pages only, fail fast
    "quick": {
        "user_agents_file": "user-agents.txt",
        "headers": {
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.5",
        },
        "connect_timeout_ms": 2000,
        "read_timeout_ms": 5000,
        "content_limit": 2 * 1024 * 1024,
    },

    # Add more profiles here...
}
