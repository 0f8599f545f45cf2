import uuid
from datetime import datetime


# Function to generate a unique conversation ID:
def generate_conversation_id() -> str:
    """Generate a unique conversation ID with timestamp."""
    now = datetime.now()

    day = now.strftime("%d")  # 18
    month = now.strftime("%b").lower()  # nov
    year = now.strftime("%Y")  # 2025
    time_part = now.strftime("%I%M%p").lstrip("0").lower()  # 313pm

    unique_id = uuid.uuid4().hex[:8]
    return f"conv_{day}_{month}_{year}_{time_part}_{unique_id}"


def generate_record_id() -> str:
    return str(uuid.uuid4())


def generate_chunk_id(conversation_id: str, position: int) -> str:
    return f"{conversation_id}__{position:05d}_{uuid.uuid4().hex[:8]}"
