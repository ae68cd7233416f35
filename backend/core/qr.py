from dataclasses import dataclass
from typing import Optional

QR_PREFIX = "keg"


@dataclass(frozen=True)
class QRCodeData:
    contract: str
    token_id: str


def format_qr_code(contract: str, token_id: str) -> str:
    """Payload encoded on a keg label: ``keg:<contract>:<token_id>``."""
    return f"{QR_PREFIX}:{contract}:{token_id}"


def parse_qr_code(qr_string: str) -> Optional[QRCodeData]:
    parts = (qr_string or "").split(":")
    if len(parts) != 3 or parts[0] != QR_PREFIX:
        return None
    return QRCodeData(contract=parts[1], token_id=parts[2])
