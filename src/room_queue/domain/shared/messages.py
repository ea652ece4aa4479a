"""Centralized message constants for error messages, validation, and log output."""

from __future__ import annotations


class ErrorMessages:
    """Error messages for exceptions and validation failures."""

    # Event Validation Errors
    EVENT_REF_REQUIRED = "Event type '{event_type}' requires a ref"
    EVENT_ORDER_ONLY_ON_REORDER = "Only 'reordered' events may carry an order"
    EVENT_ORDER_REQUIRED = "A 'reordered' event requires an order"
    EVENT_URL_REQUIRED = "Event type '{event_type}' requires a url"
    EMPTY_TRACK_URL = "Track URL cannot be empty"

    # Record Decoding Errors
    RECORD_NOT_OBJECT = "record is not a JSON object"
    RECORD_INVALID_JSON = "invalid JSON: {error}"
    RECORD_INVALID_FIELDS = "invalid fields: {error}"

    # Reorder Validation Errors
    REORDER_DUPLICATE_IDS = "Reorder contains duplicate ids: {ids}"
    REORDER_UNKNOWN_IDS = "Reorder references ids that are not queued: {ids}"
    REORDER_PENDING_ITEM = "Local-only placeholder items cannot be reordered"

    # Store Errors
    STORE_READ_FAILED = "Failed to read event log: {error}"
    STORE_WRITE_FAILED = "Failed to write event log: {error}"
    STORE_HTTP_STATUS = "Event log request returned HTTP {status}"
    STORE_BAD_ENCODING = "Unexpected repository content encoding: {encoding}"
    STORE_BAD_CONTENT = "Repository content could not be decoded: {error}"

    # Playback Errors
    PLAYER_NOT_FOUND = "Player executable '{path}' not found"
    PLAYER_EXITED = "Player exited with code {code}"

    # Configuration Errors
    INVALID_DATABASE_URL = "Database URL must start with sqlite://"
    INVALID_LOG_LEVEL = "Invalid log level: {level}. Must be one of {valid_levels}"
    GITHUB_REPO_REQUIRED = "STORE__GITHUB_REPO is required for the github backend"
    GITHUB_TOKEN_REQUIRED = "STORE__GITHUB_TOKEN is required for the github backend"
    UNKNOWN_STORE_BACKEND = "Unknown store backend: {backend}"


class LogTemplates:
    """Log message templates for structured logging.

    Use these with logger.info(), logger.error(), etc. and pass values as parameters
    for proper log formatting and structured logging support.
    """

    # Application Lifecycle
    APP_STARTING = "Starting room queue for room '%s' (%s)"
    APP_STOPPED = "Room queue stopped"
    APP_KEYBOARD_INTERRUPT = "Received keyboard interrupt, shutting down"
    APP_FATAL_ERROR = "Fatal error: %s"
    APP_CONFIGURATION_ERROR = "Configuration error: %s"
    APP_DISCONNECTED = "Event log unreachable at startup and no cached state; showing disconnected"
    APP_SHUTDOWN_SIGNAL = "Received shutdown signal"

    # Database Lifecycle
    DATABASE_INITIALIZED = "Database initialized at %s"
    DATABASE_CLOSED = "Database manager closed"

    # Event Log Store
    STORE_READ = "Read %d events from %s"
    STORE_APPENDED = "Appended %s event %d to %s"
    STORE_APPEND_CONFLICT = "Append conflict on id %d (attempt %d/%d), re-reading tail"
    STORE_APPEND_EXHAUSTED = "Append of %s event gave up after %d attempts"
    STORE_UNAVAILABLE = "Event log unavailable during %s: %s"
    STORE_APPEND_CALLBACK_ERROR = "Error in append callback for event %d"
    STORE_LOG_MISSING = "Event log file %s does not exist yet; treating as empty"
    STORE_BLOB_FALLBACK = "Event log %s is too large for the contents API; read blob %s"

    # Record Decoding
    RECORD_CORRUPT = "Skipping corrupt log record at line %d: %s"
    RECORD_DUPLICATE_ID = "Skipping event with duplicate id %d"

    # Projection
    PROJECTION_UNKNOWN_TYPE = "Ignoring event %d of unknown type '%s'"
    PROJECTION_INVALID_REF = "Ignoring %s event %d: ref %s is not an unresolved item"
    PROJECTION_MISSING_URL = "Ignoring queued event %d without url"
    PROJECTION_SUPERSEDED = "Event %d superseded now playing item %s"
    PROJECTION_REORDER_IGNORED = "Ignoring reordered event %d: ids %s are not all queued"
    PROJECTION_REORDER_MALFORMED = "Ignoring reordered event %d: order is missing or has duplicates"
    PROJECTION_HISTORY_PURGED = "Cleared event %d purged %d history entries"
    PROJECTION_DONE = "Projected %d events: %d queued, now playing=%s, %d in history"

    # Push Notifications
    PUSH_SUBSCRIBED = "Subscribed handler to log-changed notifications"
    PUSH_UNSUBSCRIBED = "Unsubscribed handler from log-changed notifications"
    PUSH_NO_SUBSCRIBERS = "No subscribers for log-changed notification from %s"
    PUSH_NOTIFYING = "Notifying %d subscribers of log change from %s"
    PUSH_HANDLER_ERROR = "Error in log-changed handler: %s"
    PUSH_WEBHOOK_IGNORED = "Ignoring webhook delivery: %s"
    PUSH_WEBHOOK_MATCHED = "Webhook delivery touched %s in %s"

    # Webhook Relay
    RELAY_STARTED = "Webhook relay listener started for %s"
    RELAY_STOPPED = "Webhook relay listener stopped"
    RELAY_HOOK_CREATED = "Created relay hook %s"
    RELAY_CONNECTED = "Webhook relay connected; listening for pushes to %s"
    RELAY_CLOSED = "Webhook relay connection closed after %d deliveries"
    RELAY_SESSION_FAILED = "Webhook relay session failed: %s; reconnecting in %.1fs"
    RELAY_HOOK_DELETE_FAILED = "Could not delete relay hook %s: %s"

    # Poll Loop
    POLL_STARTED = "Poll loop '%s' started (interval %.1fs)"
    POLL_STOPPED = "Poll loop '%s' stopped"
    POLL_ALREADY_RUNNING = "Poll loop '%s' is already running"
    POLL_TRIGGERED = "Poll loop '%s' triggered out of band"
    POLL_FAILED = "Poll loop '%s' tick failed (%d consecutive), retrying in %.1fs"
    POLL_ERROR = "Error in poll loop '%s'"

    # Queue Client
    CLIENT_REFRESHED = "Refreshed queue state at event %d (%d queued)"
    CLIENT_REFRESH_SUPERSEDED = "Discarding read %d superseded by read %d"
    CLIENT_REFRESH_FAILED = "Queue refresh failed, serving cached state: %s"
    CLIENT_ENQUEUED = "Enqueued %s as event %d"
    CLIENT_PLACEHOLDER = "Store unavailable, showing local placeholder for %s"
    CLIENT_PLACEHOLDERS_RECONCILED = "Reconciled %d local placeholders after successful read"
    CLIENT_SKIP_NOOP = "Skip ignored: %s"
    CLIENT_SKIP_REQUESTED = "Requested skip of item %d as event %d"
    CLIENT_CLEARED = "Cleared queue as event %d"
    CLIENT_REORDERED = "Reordered queue as event %d"
    CLIENT_REORDER_NOOP = "Reorder matches current order, nothing appended"
    CLIENT_ACTION_DEGRADED = "%s not applied, event log unavailable: %s"
    CLIENT_LOG_CHANGED = "Log changed (%s), refreshing now"

    # Playback Arbiter
    ARBITER_STARTED = "Playback arbiter started; this process must be the only arbiter for room '%s'"
    ARBITER_STOPPED = "Playback arbiter stopped"
    ARBITER_ALREADY_RUNNING = "Playback arbiter is already running"
    ARBITER_TRANSITION = "Arbiter %s -> %s"
    ARBITER_PICKED = "Picked item %d (%s) from queue head"
    ARBITER_RESOLVE_FAILED = "Failed to resolve item %d (%s)"
    ARBITER_ENGINE_START_FAILED = "Playback engine failed to start item %d: %s"
    ARBITER_PLAYING = "Playing item %d: %s"
    ARBITER_COMPLETED = "Item %d finished playing"
    ARBITER_ENGINE_ERROR = "Playback engine error on item %d: %s"
    ARBITER_SKIPPED = "Skip requested for item %d, stopping playback"
    ARBITER_INTERRUPTED = "Item %d is no longer now playing (cleared), stopping playback"
    ARBITER_RECORD_FAILED = "Could not record %s event for item %s, will retry: %s"
    ARBITER_OUTBOX_FLUSHED = "Recorded %d deferred outcome events"
    ARBITER_ORPHAN_RECOVERED = "Marking orphaned now playing item %d as failed"
    ARBITER_ORPHAN_WAITING = "Now playing item %s is not ours; waiting"
    ARBITER_READ_FAILED = "Arbiter could not read the event log: %s"
    ARBITER_STEP_ERROR = "Unexpected error in arbiter step"
    ARBITER_TITLE_BACKFILLED = "Recorded title for item %d: %s"
    ARBITER_TITLE_BACKFILL_FAILED = "Could not resolve title for item %d"

    # Audio
    RESOLVER_CACHE_HIT = "Cache hit for URL: %s"
    RESOLVER_CACHE_EXPIRED_CLEANED = "Cleaned %d expired cache entries"
    RESOLVER_EXTRACT_FAILED = "Failed to extract info for URL: %s"
    RESOLVER_NO_STREAM_URL = "No stream URL found for %s"
    PLAYER_STARTED = "Player started for %s (pid %s)"
    PLAYER_STOPPED = "Player stopped"
    PLAYER_FINISHED = "Player finished with exit code %s"
    PLAYER_VOLUME_SET = "Player volume set to %d"
    PLAYER_CALLBACK_ERROR = "Error in player callback"
