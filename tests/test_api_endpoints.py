"""
Tests for the StarLedger HTTP API.
"""

import os
import sys
import threading
import time

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

import pytest

from api import create_app
from blockchain import GENESIS_BLOCK_BODY, Blockchain
from config import StarLedgerConfig
from monitoring.metrics import metrics
from storage import MemoryStorage, StorageWriteError

START_TIME = 1_700_000_000


class SlowStorage(MemoryStorage):
    """In-memory store whose reads are slow enough for requests to overlap."""

    def get(self, key):
        time.sleep(0.05)
        return super().get(key)


def request_validation(client, address):
    response = client.post("/requestValidation", json={"address": address})
    assert response.status_code == 200
    return response.get_json()


def confirm_wallet(client, wallet):
    request = request_validation(client, wallet.address)
    response = client.post(
        "/message-signature/validate",
        json={"address": wallet.address, "signature": wallet.sign_message(request["message"])},
    )
    assert response.status_code == 200
    return response.get_json()


# =============================================================================
# Validation flow
# =============================================================================

class TestRequestValidation:
    """Tests for POST /requestValidation."""

    def test_new_request(self, flask_client, wallet):
        response = flask_client.post("/requestValidation", json={"address": wallet.address})

        assert response.status_code == 200
        assert response.headers["Cache-Control"] == "no-cache"
        assert response.get_json() == {
            "walletAddress": wallet.address,
            "requestTimeStamp": START_TIME,
            "message": f"{wallet.address}:{START_TIME}:starRegistry",
            "validationWindow": 300,
        }

    def test_repeat_request_shrinks_window(self, flask_client, manual_scheduler):
        first = request_validation(flask_client, "addr")
        manual_scheduler.advance(42)
        second = request_validation(flask_client, "addr")

        assert second["message"] == first["message"]
        assert second["validationWindow"] == 258

    def test_response_keeps_field_order(self, flask_client):
        response = flask_client.post("/requestValidation", json={"address": "addr"})
        assert list(response.get_json()) == [
            "walletAddress", "requestTimeStamp", "message", "validationWindow",
        ]

    @pytest.mark.parametrize("body", [None, {}, {"address": ""}, {"address": 12}])
    def test_missing_or_bad_address(self, flask_client, body):
        response = flask_client.post("/requestValidation", json=body)
        assert response.status_code == 400
        assert "error" in response.get_json()

    def test_non_json_body(self, flask_client):
        response = flask_client.post(
            "/requestValidation", data="address=x", content_type="text/plain"
        )
        assert response.status_code == 400


class TestSignatureValidation:
    """Tests for POST /message-signature/validate."""

    def test_valid_signature(self, flask_client, wallet):
        body = confirm_wallet(flask_client, wallet)

        assert body["registerStar"] is True
        assert body["status"]["address"] == wallet.address
        assert body["status"]["messageSignature"] is True
        assert body["status"]["validationWindow"] == 300

    def test_invalid_signature(self, flask_client, wallet, other_wallet):
        request = request_validation(flask_client, wallet.address)

        response = flask_client.post(
            "/message-signature/validate",
            json={
                "address": wallet.address,
                "signature": other_wallet.sign_message(request["message"]),
            },
        )

        assert response.status_code == 400
        body = response.get_json()
        assert body["error_type"] == "InvalidSignatureError"
        assert body["error"] == f"Signature is not valid: {wallet.address}"

    def test_malformed_signature(self, flask_client, wallet):
        request_validation(flask_client, wallet.address)

        response = flask_client.post(
            "/message-signature/validate",
            json={"address": wallet.address, "signature": "%%%"},
        )

        assert response.status_code == 400
        assert response.get_json()["error_type"] == "VerificationError"

    def test_unknown_request(self, flask_client, wallet):
        response = flask_client.post(
            "/message-signature/validate",
            json={"address": wallet.address, "signature": wallet.sign_message("x")},
        )

        assert response.status_code == 400
        assert response.get_json()["error_type"] == "RequestNotFoundError"

    def test_expired_request(self, flask_client, manual_scheduler, wallet):
        request = request_validation(flask_client, wallet.address)
        manual_scheduler.advance(300)

        response = flask_client.post(
            "/message-signature/validate",
            json={"address": wallet.address, "signature": wallet.sign_message(request["message"])},
        )

        assert response.status_code == 400

    def test_missing_signature(self, flask_client, wallet):
        response = flask_client.post(
            "/message-signature/validate", json={"address": wallet.address}
        )
        assert response.status_code == 400
        assert "signature" in response.get_json()["error"]


# =============================================================================
# Registration
# =============================================================================

class TestRegisterStar:
    """Tests for POST /block."""

    def test_register_star(self, flask_client, wallet, star_payload, blockchain):
        confirm_wallet(flask_client, wallet)

        response = flask_client.post("/block", json=star_payload(wallet.address, story="abc"))

        assert response.status_code == 200
        block = response.get_json()
        assert list(block) == ["hash", "height", "body", "time", "previousBlockHash"]
        assert block["height"] == 1
        assert block["body"]["address"] == wallet.address
        assert block["body"]["star"]["story"] == "616263"
        assert block["previousBlockHash"] == blockchain.get_block(0).hash
        assert blockchain.get_block_height() == 1

    def test_registration_consumes_confirmation(self, flask_client, wallet, star_payload, mempool):
        confirm_wallet(flask_client, wallet)
        assert flask_client.post("/block", json=star_payload(wallet.address)).status_code == 200

        assert mempool.verify_address_request(wallet.address) is False

        second = flask_client.post("/block", json=star_payload(wallet.address))
        assert second.status_code == 400
        assert "already been used" in second.get_json()["error"]

    def test_unconfirmed_address_refused(self, flask_client, wallet, star_payload, blockchain):
        request_validation(flask_client, wallet.address)

        response = flask_client.post("/block", json=star_payload(wallet.address))

        assert response.status_code == 400
        assert blockchain.get_block_height() == 0

    def test_expired_confirmation_refused(
        self, flask_client, wallet, star_payload, manual_scheduler
    ):
        confirm_wallet(flask_client, wallet)
        manual_scheduler.advance(300)

        response = flask_client.post("/block", json=star_payload(wallet.address))

        assert response.status_code == 400

    def test_story_too_long(self, flask_client, wallet, star_payload, mempool):
        confirm_wallet(flask_client, wallet)

        response = flask_client.post("/block", json=star_payload(wallet.address, story="x" * 251))

        assert response.status_code == 400
        assert response.get_json()["error_type"] == "PayloadError"
        # A rejected payload does not use up the confirmation
        assert mempool.verify_address_request(wallet.address) is True

    def test_extra_properties(self, flask_client, wallet, star_payload):
        payload = star_payload(wallet.address)
        payload["extra"] = 1
        response = flask_client.post("/block", json=payload)
        assert response.status_code == 400

    def test_empty_payload(self, flask_client):
        response = flask_client.post("/block", json={})
        assert response.status_code == 400

    def test_configured_story_limit(self, blockchain, mempool, wallet, star_payload):
        config = StarLedgerConfig(storage_backend="memory", max_story_length=5)
        client = create_app(config, blockchain=blockchain, mempool=mempool).test_client()
        confirm_wallet(client, wallet)

        response = client.post("/block", json=star_payload(wallet.address, story="123456"))

        assert response.status_code == 400

    def test_concurrent_registrations_use_one_confirmation(
        self, mempool, wallet, star_payload
    ):
        chain = Blockchain(SlowStorage(), clock=lambda: START_TIME)
        config = StarLedgerConfig(storage_backend="memory")
        app = create_app(config, blockchain=chain, mempool=mempool)
        confirm_wallet(app.test_client(), wallet)

        barrier = threading.Barrier(2)
        codes = []
        codes_lock = threading.Lock()

        def register():
            client = app.test_client()
            barrier.wait()
            response = client.post("/block", json=star_payload(wallet.address))
            with codes_lock:
                codes.append(response.status_code)

        threads = [threading.Thread(target=register) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(codes) == [200, 400]
        assert chain.get_block_height() == 1

    def test_failed_append_keeps_confirmation(
        self, blockchain, mempool, wallet, star_payload, monkeypatch
    ):
        client = create_app(
            StarLedgerConfig(storage_backend="memory"), blockchain=blockchain, mempool=mempool
        ).test_client()
        confirm_wallet(client, wallet)

        def failing_put(key, value):
            raise StorageWriteError("disk full")

        monkeypatch.setattr(blockchain.storage, "put", failing_put)
        response = client.post("/block", json=star_payload(wallet.address))
        assert response.status_code == 500
        assert mempool.verify_address_request(wallet.address) is True

        monkeypatch.undo()
        assert client.post("/block", json=star_payload(wallet.address)).status_code == 200
        assert mempool.verify_address_request(wallet.address) is False


# =============================================================================
# Lookups
# =============================================================================

class TestLookups:
    """Tests for block and star lookups."""

    def register(self, client, wallet, star_payload, story):
        confirm_wallet(client, wallet)
        response = client.post("/block", json=star_payload(wallet.address, story=story))
        assert response.status_code == 200
        return response.get_json()

    def test_get_genesis_block(self, flask_client):
        response = flask_client.get("/block/0")

        assert response.status_code == 200
        block = response.get_json()
        assert block["previousBlockHash"] == ""
        assert block["body"]["address"] == GENESIS_BLOCK_BODY["address"]
        assert block["body"]["star"]["storyDecoded"] == "Found star using https://www.google.com/sky/"

    def test_get_block_by_height(self, flask_client, wallet, star_payload):
        self.register(flask_client, wallet, star_payload, "my star")

        block = flask_client.get("/block/1").get_json()

        assert block["body"]["star"]["story"] == "6d792073746172"
        assert block["body"]["star"]["storyDecoded"] == "my star"

    def test_get_missing_block(self, flask_client):
        response = flask_client.get("/block/99")

        assert response.status_code == 404
        body = response.get_json()
        assert body["error_type"] == "BlockNotFoundError"
        assert body["details"] == {"height": 99}

    def test_get_star_by_hash(self, flask_client, wallet, star_payload):
        registered = self.register(flask_client, wallet, star_payload, "hashed")

        response = flask_client.get(f"/stars/hash:{registered['hash']}")

        assert response.status_code == 200
        assert response.get_json()["height"] == registered["height"]
        assert response.get_json()["body"]["star"]["storyDecoded"] == "hashed"

    def test_get_star_by_unknown_hash(self, flask_client):
        response = flask_client.get("/stars/hash:" + "0" * 64)
        assert response.status_code == 404

    def test_get_stars_by_address(self, flask_client, wallet, other_wallet, star_payload):
        self.register(flask_client, wallet, star_payload, "first")
        self.register(flask_client, other_wallet, star_payload, "other")
        self.register(flask_client, wallet, star_payload, "second")

        response = flask_client.get(f"/stars/address:{wallet.address}")

        assert response.status_code == 200
        stars = response.get_json()
        assert [s["height"] for s in stars] == [1, 3]
        assert [s["body"]["star"]["storyDecoded"] for s in stars] == ["first", "second"]

    def test_get_stars_by_unknown_address(self, flask_client):
        response = flask_client.get("/stars/address:nobody")
        assert response.status_code == 200
        assert response.get_json() == []


# =============================================================================
# Chain
# =============================================================================

class TestChainEndpoints:
    """Tests for chain height and validation."""

    def test_height(self, flask_client):
        assert flask_client.get("/chain/height").get_json() == {"height": 0}

    def test_info(self, flask_client):
        info = flask_client.get("/chain/info").get_json()
        assert info["height"] == 0
        assert info["mempool"]["pending"] == 0
        assert info["storage"]["backend_type"] == "MemoryStorage"

    def test_validate_clean_chain(self, flask_client):
        response = flask_client.get("/chain/validate")

        assert response.get_json() == {"valid": True, "errors": []}
        assert metrics.get_histogram("chain_validation_duration_ms").count == 1

    def test_validate_tampered_chain(self, flask_client, blockchain):
        blockchain.add_block({"address": "a", "star": {"ra": "1", "dec": "2", "story": "00"}})
        block = blockchain.get_block(1)
        block.body = "tampered"
        blockchain.modify_block(1, block)

        body = flask_client.get("/chain/validate").get_json()

        assert body["valid"] is False
        assert body["errors"] == [
            {"kind": "block_hash", "height": 1, "message": "block hash invalid for block 1"}
        ]


# =============================================================================
# Monitoring and errors
# =============================================================================

class TestMonitoringEndpoints:
    """Tests for health and metrics endpoints."""

    def test_health(self, flask_client):
        body = flask_client.get("/health").get_json()

        assert body["status"] == "healthy"
        assert body["checks"]["blockchain"]["height"] == 0
        assert body["checks"]["storage"]["available"] is True

    def test_liveness_and_readiness(self, flask_client):
        assert flask_client.get("/health/live").status_code == 200
        assert flask_client.get("/health/ready").get_json() == {"status": "ready"}

    def test_prometheus_metrics(self, flask_client, wallet):
        request_validation(flask_client, wallet.address)

        response = flask_client.get("/metrics")

        assert response.status_code == 200
        assert response.mimetype == "text/plain"
        text = response.get_data(as_text=True)
        assert "starledger_validation_requests_total 1" in text
        assert "starledger_mempool_pending 1" in text
        assert "starledger_blockchain_height 0" in text

    def test_json_metrics(self, flask_client):
        flask_client.get("/chain/height")
        body = flask_client.get("/metrics/json").get_json()
        assert "http_requests_total" in body["counters"]

    def test_request_id_header(self, flask_client):
        response = flask_client.get("/chain/height", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"

    def test_unknown_route(self, flask_client):
        response = flask_client.get("/nope")
        assert response.status_code == 404
        assert response.get_json() == {"error": "Endpoint not found"}

    def test_wrong_method(self, flask_client):
        response = flask_client.get("/requestValidation")
        assert response.status_code == 405

    def test_storage_failure_is_500(self, flask_client, blockchain):
        blockchain.storage.put(0, b"{broken")

        response = flask_client.get("/block/0")

        assert response.status_code == 500
        assert response.get_json()["error_type"] == "StorageReadError"
