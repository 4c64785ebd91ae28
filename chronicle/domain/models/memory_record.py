from typing import Dict, Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class MemoryRecord(BaseModel):
    """Immutable experience entry in an agent's ledger chain"""
    model_config = ConfigDict(frozen=True)

    payload: Dict[str, Any] = Field(description="Caller-supplied experience content")
    previous_cid: str = Field(default="", description="cid of the prior record, empty for genesis")
    signature: str = Field(description="Signature over payload, previous_cid, timestamp and agent_version")
    timestamp: str = Field(description="ISO-8601 creation time")
    agent_version: str = Field(description="Version of the producing agent")
    cid: Optional[str] = Field(None, description="Content identifier assigned by storage")

    @property
    def is_genesis(self) -> bool:
        return self.previous_cid == ""

    def signing_body(self) -> Dict[str, Any]:
        """Fields covered by the signature"""
        return {
            "data": self.payload,
            "previousCid": self.previous_cid,
            "timestamp": self.timestamp,
            "agentVersion": self.agent_version,
        }

    def to_document(self) -> Dict[str, Any]:
        """Stored form: payload fields flattened beside the chain metadata"""
        document = dict(self.payload)
        document.update({
            "previousCid": self.previous_cid,
            "signature": self.signature,
            "timestamp": self.timestamp,
            "agentVersion": self.agent_version,
        })
        return document

    @classmethod
    def from_document(cls, document: Dict[str, Any], cid: Optional[str] = None) -> "MemoryRecord":
        """Inverse of ``to_document``"""
        reserved = {"previousCid", "signature", "timestamp", "agentVersion"}
        missing = [key for key in ("signature", "timestamp", "agentVersion") if key not in document]
        if missing:
            raise ValueError(f"Memory document is missing fields: {', '.join(missing)}")

        return cls(
            payload={k: v for k, v in document.items() if k not in reserved},
            previous_cid=document.get("previousCid") or "",
            signature=document["signature"],
            timestamp=document["timestamp"],
            agent_version=document["agentVersion"],
            cid=cid,
        )


class AppendResult(BaseModel):
    """Outcome of a successful ledger append"""
    success: bool = True
    cid: str
    previous_cid: str
    tx_hash: Optional[str] = None


class ChainVerification(BaseModel):
    """Result of reconciling the local chain with the on-chain anchor"""
    consistent: bool
    agent_id: str
    head_cid: Optional[str] = None
    anchored_digest: Optional[str] = None
    local_digest: Optional[str] = None
    records_checked: int = 0
    invalid_signatures: List[str] = Field(default_factory=list)
    orphaned_cids: List[str] = Field(default_factory=list)
    details: str = ""
