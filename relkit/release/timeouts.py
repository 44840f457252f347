from __future__ import annotations

# Local git operations (status, rev-parse, add, commit, tag, reset)
GIT_TIMEOUT_SECONDS = 30.0

# Network-bound git operations (push, remote tag deletion)
GIT_NETWORK_TIMEOUT_SECONDS = 3 * 60.0

# Registry publish/yank, per attempt
REGISTRY_TIMEOUT_SECONDS = 5 * 60.0

# Package build before upload
BUILD_TIMEOUT_SECONDS = 10 * 60.0

# Publish retry policy
PUBLISH_RETRY_ATTEMPTS = 3
PUBLISH_RETRY_BACKOFF_SECONDS = 2.0
PUBLISH_MAX_BACKOFF_SECONDS = 60.0

# Pause between two package uploads (registry rate limits)
INTER_PACKAGE_DELAY_SECONDS = 5.0
