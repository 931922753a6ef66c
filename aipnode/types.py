"""Typed dictionaries for AIP protocol objects."""

from typing import Any, Optional, TypedDict


class PaymentOffer(TypedDict, total=False):
    amount: int
    currency: str
    type: str


class TaskRequest(TypedDict):
    task_id: str
    requester_id: str
    task_type: str
    description: str
    params: Optional[dict[str, Any]]
    payment_offer: Optional[PaymentOffer]
    callback_url: Optional[str]
    deadline: Optional[str]
    nonce: str
    timestamp: str
    signature: str


class Receipt(TypedDict, total=False):
    task_id: str
    requester_id: str
    agent_id: str
    task_type: str
    completion_timestamp: str
    result_hash: str
    payment_proof: Optional[str]
    agent_signature: str
    requester_signature: str


class TaskRecord(TypedDict, total=False):
    task_id: str
    requester_id: str
    task_type: str
    description: str
    params: Optional[dict[str, Any]]
    payment_offer: Optional[PaymentOffer]
    callback_url: Optional[str]
    deadline: Optional[str]
    nonce: str
    timestamp: str
    signature: str
    status: str
    created: str
    updated: str
    result: Any
    receipt: Optional[Receipt]
    rejection_reason: str


class Capability(TypedDict):
    type: str
    description: str
    schema_url: Optional[str]


class Manifest(TypedDict, total=False):
    protocol_version: str
    agent_id: str
    agent_name: str
    agent_description: str
    capabilities: list[Capability]
    pricing: dict[str, Any]
    payment_methods: list[str]
    inbox_url: Optional[str]
    reputation_url: Optional[str]
    nostr: dict[str, Any]
    spam_bond: dict[str, Any]
    updated: str
