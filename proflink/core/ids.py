import secrets
import string

DOCUMENT_ID_ALPHABET = string.ascii_letters + string.digits
DOCUMENT_ID_LENGTH = 20
USER_ID_LENGTH = 28


def generate_document_id(length: int = DOCUMENT_ID_LENGTH) -> str:
    return ''.join(secrets.choice(DOCUMENT_ID_ALPHABET) for _ in range(length))


def generate_user_id() -> str:
    return generate_document_id(USER_ID_LENGTH)
