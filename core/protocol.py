"""
Wire contract for the event channel. Event names must match the server exactly.
"""


class ClientEvents:
    """Events sent from the client to the server"""
    JOIN_POOL = "join-pool"
    JOIN_CHAT = "join-chat"
    SEND_MESSAGE = "send-message"


class ServerEvents:
    """Events pushed from the server to the client"""
    MATCH_FOUND = "match-found"
    MATCH_TIMEOUT = "match-timeout"
    RECEIVE_MESSAGE = "receive-message"


class ConnectionEvents:
    """Connection state notifications raised by the transport"""
    CONNECT = "connect"
    DISCONNECT = "disconnect"
    CONNECT_ERROR = "connect_error"
