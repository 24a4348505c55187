# flask CLI commands
import json

import charityhub.client as client_pkg
from charityhub.config import IMPACT_DEFAULTS


def test_seed_stats_is_idempotent(app):
    result = app.test_cli_runner().invoke(args=["seed-stats"])

    assert result.exit_code == 0
    assert "already present" in result.output
    assert f'"raised": {IMPACT_DEFAULTS["raised"]}' in result.output


def test_storage_status_on_sql(app):
    result = app.test_cli_runner().invoke(args=["storage-status"])

    assert result.exit_code == 0
    status = json.loads(result.output)
    assert status["backend"] == "sql"
    assert status["connected"] is True


def test_storage_status_on_memory(memory_app):
    result = memory_app.test_cli_runner().invoke(args=["storage-status"])

    assert result.exit_code == 0
    assert json.loads(result.output)["backend"] == "memory"


def test_storage_status_warns_when_offline(offline_app):
    result = offline_app.test_cli_runner().invoke(args=["storage-status"])

    assert result.exit_code == 0
    assert "Database offline" in result.output


class _ScriptedClient:
    def __init__(self, server, response):
        self.server = server
        self.response = response
        self.sent = []

    def donate(self, payload):
        self.sent.append(payload)
        return self.response

    def get_stats(self):
        return dict(IMPACT_DEFAULTS)


def test_donate_command_card_flow(app, monkeypatch):
    made = []

    def factory(server):
        made.append(_ScriptedClient(server, (200, {"success": True, "message": "Donation processed!", "transactionId": "TXN_ABCDEFGHI"})))
        return made[-1]

    monkeypatch.setattr(client_pkg, "DonationApiClient", factory)

    result = app.test_cli_runner().invoke(
        args=["donate", "--amount", "25", "--frequency", "monthly", "--channel", "online", "--method", "card"],
        input="A Donor\n4242424242424242\n12/30\n123\n",
    )

    assert result.exit_code == 0, result.output
    assert "Confirm amount: 25.00" in result.output
    assert "TXN_ABCDEFGHI" in result.output
    [payload] = made[0].sent
    assert payload["frequency"] == "monthly"
    assert payload["cardDetails"]["cvv"] == "123"


def test_donate_command_redirect(app, monkeypatch):
    response = (200, {"success": True, "transactionId": "TXN_X", "redirectUrl": "https://www.paypal.com/donate/?business=B"})
    monkeypatch.setattr(client_pkg, "DonationApiClient", lambda server: _ScriptedClient(server, response))

    result = app.test_cli_runner().invoke(
        args=["donate", "--amount", "20", "--frequency", "once", "--channel", "mail", "--method", "paypal_redirect"],
    )

    assert result.exit_code == 0, result.output
    assert "business=B&amount=20" in result.output


def test_donate_command_declined(app, monkeypatch):
    response = (402, {"success": False, "message": "Your card was declined."})
    monkeypatch.setattr(client_pkg, "DonationApiClient", lambda server: _ScriptedClient(server, response))

    result = app.test_cli_runner().invoke(
        args=["donate", "--amount", "5", "--frequency", "once", "--channel", "online", "--method", "card"],
        input="A Donor\n4000000000000002\n12/30\n123\n",
    )

    assert result.exit_code == 1
    assert "Your card was declined." in result.output
