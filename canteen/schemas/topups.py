from pydantic import BaseModel, model_validator
from typing import Any, Optional

from canteen.config import settings
from canteen.schemas.common import resolve_timestamp
from canteen.util.money import non_negative


class TopUp(BaseModel):
    id: str = ""
    created_at: Optional[str] = None
    amount: float = 0.0
    status: str = ""
    provider: str = ""
    proof_url: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        amount = next((data[k] for k in ("amount", "amt", "value") if data.get(k) is not None), None)
        proof = data.get("proofUrl") or data.get("proof_url")
        if isinstance(proof, str) and proof.startswith("/"):
            proof = settings.API_BASE_URL.rstrip("/") + proof
        return {
            "id": str(data.get("id") or data.get("_id") or ""),
            "created_at": resolve_timestamp(data),
            "amount": non_negative(amount),
            "status": str(data.get("status") or data.get("state") or ""),
            "provider": str(data.get("provider") or "").strip().lower(),
            "proof_url": proof if isinstance(proof, str) else None,
        }
