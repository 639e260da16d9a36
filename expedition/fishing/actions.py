"""Fisher action and status identifiers."""

from dataclasses import dataclass

FISHER_JOB_ID = 18

CAST = 289
HOOK = 296
THALIAKS_FAVOR = 26804


@dataclass(frozen=True)
class Buff:
    """A GP-costed buff: the action that applies it and the status it leaves."""

    name: str
    action_id: int
    status_id: int
    gp_cost: int


PATIENCE_II = Buff("Patience II", action_id=4106, status_id=850, gp_cost=560)
CHUM = Buff("Chum", action_id=4104, status_id=763, gp_cost=100)

# GP to wait for when no buff is enabled; enough for one Chum.
MIN_GP_TARGET = 100
