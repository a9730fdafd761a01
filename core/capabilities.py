"""
Capabilities: what the acting user may do

Computed once per request from the user's role rows and passed explicitly
into every manager operation.

Rules:
- alumni roles grant nothing
- god implies every other capability
- captain is scoped to a game mode; a captain row without a mode covers
  every mode
- has_captain() without a mode means "captain of any mode"
"""
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional

from models import GameMode, Role, UserRole


@dataclass(frozen=True)
class Capabilities:
    user_id: int
    god: bool = False
    news: bool = False
    metadata: bool = False
    moderator: bool = False
    developer: bool = False
    captain_game_modes: FrozenSet[int] = field(default_factory=frozenset)
    # game mode -> alumni flag, including alumni captain roles
    captain_roles: tuple = ()

    @classmethod
    def from_roles(cls, user_id: int, roles: Iterable[UserRole]) -> "Capabilities":
        roles = list(roles)
        active = [role for role in roles if not role.alumni]
        active_ids = {role.role_id for role in active}
        captain_game_modes = set()
        for role in active:
            if role.role_id != Role.captain:
                continue
            if role.game_mode is None:
                captain_game_modes.update(int(game_mode) for game_mode in GameMode)
            else:
                captain_game_modes.add(role.game_mode)

        return cls(
            user_id=user_id,
            god=Role.god in active_ids,
            news=Role.news in active_ids,
            metadata=Role.metadata in active_ids,
            moderator=Role.moderator in active_ids,
            developer=Role.developer in active_ids,
            captain_game_modes=frozenset(captain_game_modes),
            captain_roles=tuple(
                (role.game_mode, bool(role.alumni))
                for role in roles
                if role.role_id == Role.captain
            ),
        )

    @property
    def any_role(self) -> bool:
        return (
            self.god
            or self.news
            or self.metadata
            or self.moderator
            or self.developer
            or bool(self.captain_game_modes)
        )

    def has_captain(self, game_mode: Optional[int] = None) -> bool:
        if self.god:
            return True
        if game_mode is None:
            return bool(self.captain_game_modes)
        return game_mode in self.captain_game_modes

    def has_news(self) -> bool:
        return self.god or self.news

    def has_metadata(self) -> bool:
        return self.god or self.metadata

    def has_moderator(self) -> bool:
        return self.god or self.moderator

    def has_god(self) -> bool:
        return self.god

    def active_captain(self, game_mode: GameMode) -> Optional[bool]:
        """
        True for a current captain of the mode, False for an alumni captain,
        None when the user never captained it. A mode-specific row wins over
        a mode-less one. Informational only.
        """
        for wanted in (game_mode, None):
            for role_game_mode, alumni in self.captain_roles:
                if role_game_mode == wanted:
                    return not alumni
        return None
