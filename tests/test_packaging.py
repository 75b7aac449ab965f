import tomllib
from pathlib import Path

PYPROJECT = Path(__file__).resolve().parent.parent / "pyproject.toml"


def _dependencies():
    with open(PYPROJECT, "rb") as f:
        return tomllib.load(f)["project"]["dependencies"]


def test_telegram_webhook_extra_declared():
    # Updater.start_webhook needs tornado, shipped with the webhooks extra
    assert any(d.startswith("python-telegram-bot[webhooks]") for d in _dependencies())


def test_solana_pinned_to_instruction_params_api():
    # CloseAccountParams and friends are imported from spl.token.instructions
    solana = next(d for d in _dependencies() if d.startswith("solana"))
    assert "<0.41" in solana


def test_spl_params_importable():
    from spl.token.instructions import CloseAccountParams, SyncNativeParams, TransferParams

    assert CloseAccountParams and SyncNativeParams and TransferParams
