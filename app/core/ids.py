import uuid

# Prefixes keep ids of different entities distinguishable at a glance.
CHAT_PREFIX = "chat"
MESSAGE_PREFIX = "msg"
STREAM_PREFIX = "strm"
RESOURCE_PREFIX = "res"
EMBEDDING_PREFIX = "emb"

def generate_id(prefix: str | None = None) -> str:
    token = uuid.uuid4().hex
    return f"{prefix}_{token}" if prefix else token
