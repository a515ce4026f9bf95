from __future__ import annotations

import base64
import json

import base58
import pytest
from solders.keypair import Keypair
from solders.message import to_bytes_versioned
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from scout_service.config.settings import DEFAULT_PAYMENT_MINTS, DEVNET_NETWORK
from scout_service.errors import ConfigurationError, PaymentError
from scout_service.http import HttpRequest, HttpResponse
from scout_service.payments import (
    ExternalSignerWallet,
    PaymentGate,
    VaultGateProvider,
    VaultWallet,
    build_transfer_transaction,
    load_vault_keypair,
)
from scout_service.payments.gate import (
    PAYMENT_HEADER,
    PAYMENT_RESPONSE_HEADER,
    decode_payment_header,
    encode_payment_header,
)
from tests.unit.fakes import FakeRpc, FakeTransport, json_response, make_settings

MINT = DEFAULT_PAYMENT_MINTS[DEVNET_NETWORK]


def _requirement(**overrides) -> dict:
    requirement = {
        "scheme": "exact",
        "network": DEVNET_NETWORK,
        "maxAmountRequired": "150000",
        "resource": "http://email.test/api/send-email",
        "description": "Send email",
        "mimeType": "application/json",
        "payTo": str(Pubkey.new_unique()),
        "maxTimeoutSeconds": 60,
        "asset": MINT,
        "extra": {},
    }
    requirement.update(overrides)
    return requirement


def _paywalled_transport(requirement: dict, *, accept: bool = True) -> FakeTransport:
    def _handler(request: HttpRequest) -> HttpResponse:
        if PAYMENT_HEADER not in request.headers:
            return json_response(
                402,
                {
                    "x402Version": 1,
                    "error": "X-PAYMENT header is required",
                    "accepts": [requirement],
                },
            )
        if not accept:
            return json_response(
                402,
                {"x402Version": 1, "error": "insufficient_funds", "accepts": [requirement]},
            )
        receipt = encode_payment_header({"success": True, "transaction": "sig123"})
        return json_response(200, {"delivered": True}, {PAYMENT_RESPONSE_HEADER: receipt})

    return FakeTransport(_handler)


def _gate(wallet, transport: FakeTransport) -> PaymentGate:
    return PaymentGate(
        wallet=wallet,
        mint=MINT,
        rpc=FakeRpc(),
        network=DEVNET_NETWORK,
        transport=transport,
    )


def _sent_transaction(transport: FakeTransport) -> VersionedTransaction:
    payment = decode_payment_header(transport.requests[-1].headers[PAYMENT_HEADER])
    raw = base64.b64decode(payment["payload"]["transaction"])
    return VersionedTransaction.from_bytes(raw)


def test_load_vault_keypair_accepts_json_byte_array() -> None:
    keypair = Keypair()

    loaded = load_vault_keypair(json.dumps(list(bytes(keypair))))

    assert loaded.pubkey() == keypair.pubkey()


def test_load_vault_keypair_accepts_base58() -> None:
    keypair = Keypair()

    loaded = load_vault_keypair(base58.b58encode(bytes(keypair)).decode("ascii"))

    assert loaded.pubkey() == keypair.pubkey()


@pytest.mark.parametrize("secret", ["", "   ", "[1, 2, 3]", "not-base58-0OIl"])
def test_load_vault_keypair_rejects_bad_material_without_echoing_it(secret: str) -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        load_vault_keypair(secret)

    if secret.strip():
        assert secret.strip() not in excinfo.value.message


def test_vault_wallet_repr_hides_secret() -> None:
    keypair = Keypair()
    wallet = VaultWallet(keypair)

    assert str(keypair.pubkey()) in repr(wallet)
    assert base58.b58encode(bytes(keypair)).decode("ascii") not in repr(wallet)


def test_transfer_transaction_has_owner_as_only_signer() -> None:
    owner = Pubkey.new_unique()

    tx = build_transfer_transaction(
        rpc=FakeRpc(),
        owner=owner,
        pay_to=Pubkey.new_unique(),
        mint=Pubkey.from_string(MINT),
        amount=150000,
    )

    assert tx.message.header.num_required_signatures == 1
    assert tx.message.account_keys[0] == owner
    assert len(tx.message.instructions) == 3


def test_vault_wallet_signs_its_own_slot() -> None:
    keypair = Keypair()
    tx = build_transfer_transaction(
        rpc=FakeRpc(),
        owner=keypair.pubkey(),
        pay_to=Pubkey.new_unique(),
        mint=Pubkey.from_string(MINT),
        amount=1,
    )

    signed = VaultWallet(keypair).sign_transaction(tx)

    expected = keypair.sign_message(to_bytes_versioned(signed.message))
    assert signed.signatures[0] == expected


def test_vault_wallet_partially_signs_when_fee_payer_set() -> None:
    keypair = Keypair()
    fee_payer = Pubkey.new_unique()
    tx = build_transfer_transaction(
        rpc=FakeRpc(),
        owner=keypair.pubkey(),
        pay_to=Pubkey.new_unique(),
        mint=Pubkey.from_string(MINT),
        amount=1,
        fee_payer=fee_payer,
    )

    signed = VaultWallet(keypair).sign_transaction(tx)

    assert signed.message.account_keys[0] == fee_payer
    assert signed.message.header.num_required_signatures == 2
    assert signed.signatures[0] == tx.signatures[0]
    assert signed.signatures[1] == keypair.sign_message(to_bytes_versioned(signed.message))


def test_vault_wallet_refuses_transaction_it_cannot_sign() -> None:
    tx = build_transfer_transaction(
        rpc=FakeRpc(),
        owner=Pubkey.new_unique(),
        pay_to=Pubkey.new_unique(),
        mint=Pubkey.from_string(MINT),
        amount=1,
    )

    with pytest.raises(PaymentError):
        VaultWallet(Keypair()).sign_transaction(tx)


def test_gate_passes_through_unpaid_responses() -> None:
    transport = FakeTransport(lambda _request: json_response(200, {"ok": True}))

    paid = _gate(VaultWallet(Keypair()), transport).send(
        HttpRequest(method="GET", url="http://free.test/")
    )

    assert paid.response.status == 200
    assert paid.receipt is None
    assert len(transport.requests) == 1


def test_gate_pays_challenge_and_retries_once() -> None:
    keypair = Keypair()
    requirement = _requirement()
    transport = _paywalled_transport(requirement)

    paid = _gate(VaultWallet(keypair), transport).send(
        HttpRequest(method="POST", url="http://email.test/api/send-email", json_body={"to": "a"})
    )

    assert paid.response.status == 200
    assert paid.receipt == {"success": True, "transaction": "sig123"}
    assert len(transport.requests) == 2
    payment = decode_payment_header(transport.requests[1].headers[PAYMENT_HEADER])
    assert payment["x402Version"] == 1
    assert payment["scheme"] == "exact"
    assert payment["network"] == DEVNET_NETWORK
    tx = _sent_transaction(transport)
    assert tx.message.account_keys[0] == keypair.pubkey()
    assert tx.signatures[0] == keypair.sign_message(to_bytes_versioned(tx.message))


def test_gate_uses_external_signer() -> None:
    keypair = Keypair()
    seen: list[VersionedTransaction] = []

    def _sign(tx: VersionedTransaction) -> VersionedTransaction:
        seen.append(tx)
        return VaultWallet(keypair).sign_transaction(tx)

    transport = _paywalled_transport(_requirement())
    wallet = ExternalSignerWallet(str(keypair.pubkey()), _sign)

    paid = _gate(wallet, transport).send(HttpRequest(method="POST", url="http://email.test/"))

    assert paid.response.ok
    assert len(seen) == 1


def test_gate_wraps_external_signer_failure() -> None:
    def _refuse(tx: VersionedTransaction) -> VersionedTransaction:
        raise RuntimeError("user rejected signature")

    transport = _paywalled_transport(_requirement())
    wallet = ExternalSignerWallet(str(Pubkey.new_unique()), _refuse)

    with pytest.raises(PaymentError, match="Could not sign payment") as excinfo:
        _gate(wallet, transport).send(HttpRequest(method="POST", url="http://email.test/"))

    assert excinfo.value.details == "user rejected signature"
    assert len(transport.requests) == 1


def test_gate_keeps_paid_response_when_receipt_is_unreadable() -> None:
    requirement = _requirement()

    def _handler(request: HttpRequest) -> HttpResponse:
        if PAYMENT_HEADER not in request.headers:
            return json_response(402, {"x402Version": 1, "accepts": [requirement]})
        return json_response(200, {"delivered": True}, {PAYMENT_RESPONSE_HEADER: "not-base64!!"})

    transport = FakeTransport(_handler)

    paid = _gate(VaultWallet(Keypair()), transport).send(
        HttpRequest(method="POST", url="http://email.test/")
    )

    assert paid.response.status == 200
    assert paid.response.json() == {"delivered": True}
    assert paid.receipt is None
    assert len(transport.requests) == 2


def test_gate_raises_when_payment_is_rejected() -> None:
    transport = _paywalled_transport(_requirement(), accept=False)

    with pytest.raises(PaymentError) as excinfo:
        _gate(VaultWallet(Keypair()), transport).send(
            HttpRequest(method="POST", url="http://email.test/")
        )

    assert excinfo.value.details == "insufficient_funds"
    assert len(transport.requests) == 2


@pytest.mark.parametrize(
    "overrides",
    [{"network": "solana-mainnet"}, {"scheme": "upto"}, {"asset": str(Pubkey.new_unique())}],
)
def test_gate_refuses_unacceptable_requirement(overrides: dict) -> None:
    transport = _paywalled_transport(_requirement(**overrides))

    with pytest.raises(PaymentError, match="No acceptable payment requirement"):
        _gate(VaultWallet(Keypair()), transport).send(
            HttpRequest(method="POST", url="http://email.test/")
        )

    assert len(transport.requests) == 1


def test_gate_rejects_malformed_challenge() -> None:
    transport = FakeTransport(
        lambda _request: HttpResponse(status=402, headers={}, body="<html>pay up</html>")
    )

    with pytest.raises(PaymentError, match="Malformed payment challenge"):
        _gate(VaultWallet(Keypair()), transport).send(HttpRequest(method="GET", url="http://x/"))


def test_vault_gate_provider_requires_secret(monkeypatch) -> None:
    monkeypatch.delenv("PROJECT_VAULT_PRIVATE_KEY", raising=False)
    provider = VaultGateProvider(make_settings(), transport=FakeTransport(), rpc=FakeRpc())

    with pytest.raises(ConfigurationError, match="PROJECT_VAULT_PRIVATE_KEY not configured"):
        provider()


def test_vault_gate_provider_builds_gate_once() -> None:
    keypair = Keypair()
    settings = make_settings(vault_private_key=json.dumps(list(bytes(keypair))))
    provider = VaultGateProvider(settings, transport=FakeTransport(), rpc=FakeRpc())

    gate = provider()

    assert gate is provider()
    assert gate.wallet.public_key == keypair.pubkey()
    assert gate.network == DEVNET_NETWORK
    assert gate.mint == MINT
