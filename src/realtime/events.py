"""
Street Legacy - Realtime Event Definitions

Connection states, close codes, and the server push event names the
connection manager dispatches.
"""

from enum import Enum


class ConnectionState(str, Enum):
    """Liveness of the realtime connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class CloseCode:
    """WebSocket close codes with client-side meaning."""

    NORMAL = 1000
    ABNORMAL = 1006
    HEARTBEAT_TIMEOUT = 4000
    AUTH_REQUIRED = 4001
    PLAYER_NOT_FOUND = 4003


AUTH_FAILURE_CODES = frozenset({CloseCode.AUTH_REQUIRED, CloseCode.PLAYER_NOT_FOUND})

# Events the manager raises itself, alongside inbound frame types
STATE_CHANGE = "state_change"
AUTH_ERROR = "auth_error"
MAX_RECONNECTS = "max_reconnects"
SOCKET_ERROR = "error"
CONNECTED = "connected"


class GameEvent(str, Enum):
    """Server push types the game-state layer listens for."""

    STAT_UPDATE = "game:stat_update"
    CRIME_RESULT = "game:crime_result"
    COOLDOWN_READY = "game:cooldown_ready"
    LEVEL_UP = "game:level_up"
    ACHIEVEMENT = "game:achievement"
    ATTACK_RECEIVED = "pvp:attack_received"
    ATTACK_RESULT = "pvp:attack_result"
    BOUNTY_PLACED = "pvp:bounty_placed"
    BOUNTY_CLAIMED = "pvp:bounty_claimed"
    JAIL_RELEASED = "pvp:jail_released"
    TRANSFER_RECEIVED = "economy:transfer_received"
    PROPERTY_INCOME = "economy:property_income"
    BUSINESS_INCOME = "economy:business_income"
    TRANSACTION = "economy:transaction"
    NOTIFICATION = "notification"
    SYSTEM_NOTIFICATION = "notification:system"
    CHAT = "chat"
    CHAT_HISTORY = "chat:history"
    CHAT_TYPING = "chat:typing"
    CHAT_MESSAGE = "chat:message"
    CHAT_MESSAGE_DELETED = "chat:message_deleted"
    CREW_MEMBER_ONLINE = "crew:member_online"
    CREW_MEMBER_OFFLINE = "crew:member_offline"
    CREW_ANNOUNCEMENT = "crew:announcement"
    CREW_RANK_CHANGED = "crew:rank_changed"
    CREW_MEMBER_JOINED = "crew:member_joined"
    CREW_MEMBER_LEFT = "crew:member_left"
    FRIEND_ONLINE = "social:friend_online"
    FRIEND_OFFLINE = "social:friend_offline"
    FRIEND_REQUEST = "social:friend_request"
    FRIEND_ACCEPTED = "social:friend_accepted"
    TERRITORY_CHANGE = "territory:control_changed"
    TERRITORY_WAR_STARTED = "territory:war_started"
    TERRITORY_WAR_ENDED = "territory:war_ended"
    TRADE_REQUEST = "trade:request_received"
    TRADE_COMPLETED = "trade:completed"
    TRADE_CANCELLED = "trade:request_cancelled"
    HEIST_STARTED = "heist:started"
    HEIST_PLAYER_JOINED = "heist:player_joined"
    HEIST_EXECUTED = "heist:executed"
    ONLINE_COUNT = "presence:online_count"
    DISTRICT_PLAYERS = "presence:district_players"
