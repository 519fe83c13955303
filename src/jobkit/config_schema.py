"""
JSON schemas for configuration validation.
"""

SCHEDULER_SCHEMA = {
    "type": "object",
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "default_lock_lifetime_seconds": {"type": "number", "exclusiveMinimum": 0},
        "default_priority": {
            "anyOf": [
                {"type": "integer"},
                {"type": "string", "enum": ["lowest", "low", "normal", "high", "highest"]},
            ]
        },
    },
    "additionalProperties": False,
}

STORAGE_SCHEMA = {
    "type": "object",
    "properties": {
        "backend": {"type": "string", "enum": ["memory", "postgres", "redis"]},
        # Postgres
        "pg_dsn": {"type": ["string", "null"]},
        "table_name": {"type": "string", "pattern": "^[A-Za-z_][A-Za-z0-9_]*$"},
        # Redis
        "redis_url": {"type": ["string", "null"]},
        "key_prefix": {"type": "string", "minLength": 1},
    },
    "required": ["backend"],
    "allOf": [
        {
            "if": {"properties": {"backend": {"const": "postgres"}}},
            "then": {"required": ["pg_dsn"]},
        },
        {
            "if": {"properties": {"backend": {"const": "redis"}}},
            "then": {"required": ["redis_url"]},
        },
    ],
}

LOGGING_SCHEMA = {
    "type": "object",
    "properties": {
        "level": {"type": "string", "enum": ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]},
        "format": {"type": "string", "enum": ["text", "json"]},
        "log_file": {"type": ["string", "null"]},
        "include_timestamp": {"type": "boolean"},
    },
}

TELEMETRY_SCHEMA = {
    "type": "object",
    "properties": {
        "enabled": {"type": "boolean"},
        "tracer_name": {"type": "string", "minLength": 1},
    },
}

CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "scheduler": SCHEDULER_SCHEMA,
        "storage": STORAGE_SCHEMA,
        "logging": LOGGING_SCHEMA,
        "telemetry": TELEMETRY_SCHEMA,
    },
}
