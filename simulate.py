from dataclasses import dataclass, field
from typing import List, Sequence

from config import SWAP_TAX_RATE
from results import ErrorKind, Result


@dataclass
class WalletFinal:
    index: int
    sol: float
    usd: float


@dataclass
class SimulationReport:
    total_sol_sent: float
    total_sol_after: float
    total_sol_spent: float
    total_volume_sol: float
    total_usd_spent: float
    total_usd_volume: float
    wallet_final: List[WalletFinal] = field(default_factory=list)

    def render(self) -> str:
        lines = ["*Simulation Result*", ""]
        for w in self.wallet_final:
            lines.append(f"*Wallet {w.index}* `{w.sol:.6f} SOL` (${w.usd:.2f})")
        lines.append("")
        lines.append(f"*Total SOL sent to wallets:* `{self.total_sol_sent:.6f}` SOL")
        lines.append(f"*Total SOL after taxes/tips:* `{self.total_sol_after:.6f}` SOL")
        lines.append(f"*Total SOL spent (taxes + tips):* `{self.total_sol_spent:.6f}` SOL")
        lines.append(f"*Total volume (pre-tax):* `{self.total_volume_sol:.6f}` SOL")
        lines.append(f"*USD spent:* `${self.total_usd_spent:.2f}`")
        lines.append(f"*USD volume:* `${self.total_usd_volume:.2f}`")
        return "\n".join(lines)


def calculate_volume_and_sol_loss(
    sol_price: float,
    jito_tip: float,
    executions: int,
    wallet_amounts: Sequence[float],
    tax_rate: float = SWAP_TAX_RATE,
) -> Result:
    """Simulate volume generated and SOL lost over repeated swap rounds.

    Each round every wallet swaps its whole balance: the pre-tax balance counts as
    volume, then the swap tax is deducted. One Jito tip is paid per round.
    """
    if sol_price <= 0 or jito_tip < 0 or executions <= 0:
        return Result.fail(ErrorKind.VALIDATION, "All numeric inputs must be > 0")
    if not wallet_amounts:
        return Result.fail(ErrorKind.VALIDATION, "Provide at least one wallet amount")
    if any(a < 0 for a in wallet_amounts):
        return Result.fail(ErrorKind.VALIDATION, "Wallet amounts cannot be negative")

    balances = list(wallet_amounts)
    total_sent = sum(balances)
    total_spent = 0.0
    total_volume = 0.0

    for _ in range(int(executions)):
        for i, balance in enumerate(balances):
            total_volume += balance
            tax = balance * tax_rate
            balances[i] = balance - tax
            total_spent += tax
        total_spent += jito_tip

    report = SimulationReport(
        total_sol_sent=total_sent,
        total_sol_after=total_sent - total_spent,
        total_sol_spent=total_spent,
        total_volume_sol=total_volume,
        total_usd_spent=total_spent * sol_price,
        total_usd_volume=total_volume * sol_price,
        wallet_final=[WalletFinal(i + 1, b, b * sol_price) for i, b in enumerate(balances)],
    )
    return Result.ok(report.render(), data=report)
