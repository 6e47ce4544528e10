import uuid


def new_id() -> str:
    """Mint a permanent row id on the device.

    The server mints ids with the same random UUID4 scheme, so rows created
    offline never need a placeholder or a remap once they reach the server.
    """
    return str(uuid.uuid4())
