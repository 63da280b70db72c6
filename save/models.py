# /save/models.py

from __future__ import annotations
from dataclasses import dataclass, asdict, field, fields
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

DIRECTIONS = ("N", "S", "E", "W")


def _known(cls, d: Mapping[str, Any]) -> Dict[str, Any]:
    # Tolerate unknown keys from older/newer callers
    allowed = {f.name for f in fields(cls)}
    return {k: d[k] for k in d.keys() if k in allowed}


@dataclass
class PlayerRow:
    name: str = "冒険者"
    level: int = 1
    exp: int = 0
    hp: int = 100
    gold: int = 0
    steps: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "PlayerRow":
        return PlayerRow(**_known(PlayerRow, d))


@dataclass
class ItemRow:
    item_type: str
    quantity: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "ItemRow":
        return ItemRow(item_type=str(d["item_type"]), quantity=int(d["quantity"]))


@dataclass(frozen=True)
class LastRestedBase:
    x: int
    y: int
    floor: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def coerce(value: Union["LastRestedBase", Mapping[str, Any], Sequence[int]]) -> "LastRestedBase":
        """Accept a LastRestedBase, an {x, y, floor} mapping or an (x, y, floor) triple."""
        if isinstance(value, LastRestedBase):
            return value
        if isinstance(value, Mapping):
            return LastRestedBase(x=int(value["x"]), y=int(value["y"]), floor=int(value["floor"]))
        x, y, floor = value
        return LastRestedBase(x=int(x), y=int(y), floor=int(floor))


@dataclass
class GameProgressRow:
    floor: int = 0
    player_x: int = 1
    player_y: int = 1
    player_dir: str = "N"
    boss_defeated: bool = False
    built_bases: List[str] = field(default_factory=list)
    opened_chests: List[str] = field(default_factory=list)
    last_rested_base: Optional[LastRestedBase] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "GameProgressRow":
        kw = _known(GameProgressRow, d)
        if kw.get("last_rested_base") is not None:
            kw["last_rested_base"] = LastRestedBase.coerce(kw["last_rested_base"])
        for key in ("built_bases", "opened_chests"):
            if key in kw:
                kw[key] = [str(v) for v in kw[key]]
        if "boss_defeated" in kw:
            kw["boss_defeated"] = bool(kw["boss_defeated"])
        return GameProgressRow(**kw)


@dataclass
class SettingRow:
    key: str
    value: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "SettingRow":
        value = d.get("value")
        return SettingRow(key=str(d["key"]), value=None if value is None else str(value))


@dataclass
class SaveSummary:
    """One line of the title-screen slot list."""
    slot: int
    name: str
    level: int
    updated_at: str


@dataclass
class SaveBundle:
    """Everything save_full() writes for a slot."""
    player: PlayerRow = field(default_factory=PlayerRow)
    items: List[ItemRow] = field(default_factory=list)
    progress: GameProgressRow = field(default_factory=GameProgressRow)
    settings: List[SettingRow] = field(default_factory=list)

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "SaveBundle":
        return SaveBundle(
            player=PlayerRow.from_dict(d.get("player") or {}),
            items=[ItemRow.from_dict(i) for i in d.get("items") or []],
            progress=GameProgressRow.from_dict(d.get("progress") or {}),
            settings=[SettingRow.from_dict(s) for s in d.get("settings") or []],
        )


@dataclass
class FullSaveData:
    slot: int
    player: PlayerRow
    items: List[ItemRow]
    progress: GameProgressRow
    settings: List[SettingRow]
    updated_at: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def bundle(self) -> SaveBundle:
        return SaveBundle(
            player=self.player,
            items=list(self.items),
            progress=self.progress,
            settings=list(self.settings),
        )
