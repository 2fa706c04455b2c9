from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from fulfillment.shared.context import CallContext


class TestCallContext:

    def test_headers_include_authorization(self):
        ctx = CallContext(authorization="Bearer t", correlation_id="c-1")

        assert ctx.headers() == {"X-Correlation-ID": "c-1", "Authorization": "Bearer t"}

    def test_headers_omit_missing_authorization(self):
        assert CallContext(correlation_id="c-1").headers() == {"X-Correlation-ID": "c-1"}

    def test_correlation_id_generated(self):
        assert CallContext().correlation_id != CallContext().correlation_id

    def test_from_request(self):
        app = FastAPI()

        @app.get("/ctx")
        async def ctx(request: Request):
            c = CallContext.from_request(request)
            return {"authorization": c.authorization, "correlation_id": c.correlation_id}

        client = TestClient(app)
        forwarded = client.get(
            "/ctx", headers={"Authorization": "Bearer t", "X-Correlation-ID": "abc"}
        ).json()
        generated = client.get("/ctx").json()

        assert forwarded == {"authorization": "Bearer t", "correlation_id": "abc"}
        assert generated["authorization"] is None
        assert generated["correlation_id"]
