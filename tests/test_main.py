import pytest

import main
from models import ItemError, ItemOutcome


class StubEngine:
    def __init__(self, outcome):
        self.outcome = outcome
        self.asked = []

    def sync_single_product(self, sku):
        self.asked.append(sku)
        return self.outcome


@pytest.fixture
def wire(monkeypatch):
    def _wire(engine):
        monkeypatch.setattr(main, "load_settings", lambda env_file=None: object())
        monkeypatch.setattr(main, "build_orchestrator", lambda settings: engine)
    return _wire


def test_sync_product_command(wire, capsys):
    engine = StubEngine(ItemOutcome(item_id="7", outcome="succeeded"))
    wire(engine)

    assert main.main(["--env-file", "no-such.env", "sync-product", "8410000000007"]) == 0
    assert engine.asked == ["8410000000007"]
    assert '"succeeded"' in capsys.readouterr().out


def test_sync_product_command_reports_failure(wire):
    wire(StubEngine(ItemOutcome(item_id="X", outcome="errored", error=ItemError(reason="not_found"))))
    assert main.main(["--env-file", "no-such.env", "sync-product", "X"]) == 1
