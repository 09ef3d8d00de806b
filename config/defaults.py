DEFAULT_DB_PATH = "warden.db"
DEFAULT_COMMAND_PREFIX = "!"

# Per-level role IDs used when config/permission_roles.yml is missing.
DEFAULT_PERMISSION_ROLE_IDS = {
    "owner": {1288235345128853607},
    "admin": {1370011414378319872},
    "moderator": {1288235352808493137},
    "staff": {1288235357682401310},
    "helper": {1288235359372709958},
}

PERMISSION_LEVELS = ("user", "helper", "staff", "moderator", "admin", "owner")
PERMISSION_LEVEL_ALIASES = {"mod": "moderator", "support": "staff", "trial": "helper"}

PERMISSION_DESCRIPTIONS = {
    "user": "This command can be used by any server member",
    "helper": "This command requires helper status",
    "staff": "This command requires staff permissions",
    "moderator": "This command requires moderator permissions",
    "admin": "This command requires administrator permissions",
    "owner": "This command can only be used by the bot owner",
}

# 0 keeps every join outcome
DEFAULT_AUTOROLE_LOG_RETENTION = 5000
