# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real secrets; keep the try-on API key in .env (local, gitignored).

This file exists to make the repo self-documenting even without opening .env.
"""

ENV_VARS = {
    # App / logging
    "STOREFRONT_APP_NAME": "App display name (default: storefront-sync).",
    "STOREFRONT_LOG_LEVEL": "Console logging level (default: INFO). The log file always gets DEBUG.",
    "STOREFRONT_CONSOLE_ENABLED": "Run the interactive console (true/false, default: true).",
    # Paths (gitignored)
    "STOREFRONT_DATA_DIR": "Local data directory, also holds storefront.log (default: .local/storefront).",
    "STOREFRONT_DOWNLOADS_DIR": "Where /save writes try-on images (default: <data_dir>/downloads).",
    # Storefront backend
    "STOREFRONT_API_URL": "Storefront API base URL, chat endpoints live under /chat (default: http://localhost:5000/api).",
    "STOREFRONT_USER_ID": "Signed-in user id; used as sender id and for the conversation list.",
    # Try-on service
    "STOREFRONT_TRYON_BASE_URL": "Try-on service base URL (default: https://api.fashn.ai/v1).",
    "STOREFRONT_TRYON_API_KEY": "Bearer token for the try-on service (required only for /tryon).",
    "STOREFRONT_TRYON_CHECK_INTERVAL_SECONDS": "Delay between status polls (default: 0.5).",
    "STOREFRONT_TRYON_SUBMIT_TIMEOUT_SECONDS": "Timeout for the submission call (default: 30).",
    "STOREFRONT_TRYON_STATUS_TIMEOUT_SECONDS": "Timeout for one status call (default: 5).",
    "STOREFRONT_TRYON_OVERALL_TIMEOUT_SECONDS": "Give up on a job after this long (default: 60).",
    "STOREFRONT_TRYON_MAX_RETRIES": "Consecutive failed status checks tolerated (default: 3).",
    "STOREFRONT_TRYON_RETRY_DELAY_SECONDS": "Delay before retrying a failed status check (default: 1).",
    # Chat
    "STOREFRONT_CHAT_POLL_INTERVAL_SECONDS": "Open conversation refetch interval (default: 7).",
    "STOREFRONT_CHAT_REFETCH_AFTER_SEND_SECONDS": "Refetch this soon after a successful send (default: 1).",
    "STOREFRONT_CHAT_CALL_TIMEOUT_SECONDS": "Timeout for one chat call (default: 10).",
    "STOREFRONT_CHAT_RECONCILE_WINDOW_SECONDS": "Max clock skew when matching a sent message to the server copy (default: 30).",
    "STOREFRONT_CONVERSATIONS_POLL_INTERVAL_SECONDS": "Conversation list refetch interval (default: 5).",
}
