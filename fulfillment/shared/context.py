"""
共通 — 呼び出しコンテキスト

呼び出し元の認証ヘッダと相関 ID を 1 つの値として保持し、
オーケストレーターから各リモートクライアントへ明示的に引き渡す。
(リクエストスコープの暗黙的なヘッダ参照は行わない)
"""

from dataclasses import dataclass, field
from uuid import uuid4

from fastapi import Request


@dataclass(frozen=True)
class CallContext:
    authorization: str | None = None
    correlation_id: str = field(default_factory=lambda: uuid4().hex)

    @classmethod
    def from_request(cls, request: Request) -> "CallContext":
        auth = request.headers.get("authorization")
        correlation_id = request.headers.get("x-correlation-id") or uuid4().hex
        return cls(authorization=auth or None, correlation_id=correlation_id)

    def headers(self) -> dict[str, str]:
        headers = {"X-Correlation-ID": self.correlation_id}
        if self.authorization and self.authorization.strip():
            headers["Authorization"] = self.authorization
        return headers
