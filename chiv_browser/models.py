import enum
from dataclasses import dataclass, field


class GameType(str, enum.Enum):
    ALL = "ALL"
    FFA = "FFA"
    DUEL = "DUEL"
    KOTH = "KOTH"
    CTF = "CTF"
    LTS = "LTS"
    TO = "TO"
    TDM = "TDM"
    UNKNOWN = ""


class Perspective(enum.IntEnum):
    ANY = 0
    FIRST_PERSON = 1
    THIRD_PERSON = 2


MAP_PREFIX_TO_GAME_TYPE = {
    "aocffa": GameType.FFA,
    "aocduel": GameType.DUEL,
    "aockoth": GameType.KOTH,
    "aocctf": GameType.CTF,
    "aoclts": GameType.LTS,
    "aocto": GameType.TO,
    "aoctd": GameType.TDM,
}

OFFICIAL_PREFIXES = (
    "official duel server",
    "official classic server",
    "official ffa server",
    "official lts server",
    "official tdm server",
    "official to server",
)

UNSET = -1


def get_game_type(map_name: str | None) -> GameType:
    if not map_name:
        return GameType.UNKNOWN
    prefix = map_name.split("-")[0].lower()
    return MAP_PREFIX_TO_GAME_TYPE.get(prefix, GameType.UNKNOWN)


def is_official(name: str) -> bool:
    return name.lower().startswith(OFFICIAL_PREFIXES)


@dataclass(frozen=True)
class FilterCriteria:
    name: str = ""
    game_type: GameType = GameType.ALL
    hide_passworded: bool = False
    hide_empty: bool = False
    hide_full: bool = False
    max_ping: int = UNSET
    min_rank: int = UNSET
    max_rank: int = UNSET
    perspective: Perspective = Perspective.ANY
    official_only: bool = False
    worker_count: int = 8

    def __post_init__(self):
        if self.worker_count < 1:
            raise ValueError(f"worker_count must be positive, got {self.worker_count}")
        # accept raw values from config/forms
        object.__setattr__(self, "game_type", GameType(self.game_type))
        object.__setattr__(self, "perspective", Perspective(self.perspective))

    def matches_game_type(self, game_type: GameType) -> bool:
        return self.game_type == GameType.ALL or self.game_type == game_type


@dataclass(frozen=True)
class Candidate:
    """
    A server as listed by the master directory, before its own info query.
    """

    name: str | None
    address: str
    map: str = ""

    @property
    def host(self) -> str:
        return self.address.rsplit(":", 1)[0]


@dataclass(frozen=True)
class ServerInfo:
    has_password: bool = False
    current_players: int = 0
    max_players: int = 0
    ping: int = 0
    min_rank: int = 0
    max_rank: int = 0
    perspective: int = Perspective.ANY
    game_port: str = ""


@dataclass(frozen=True)
class GeoResult:
    city: str = ""
    state: str = ""
    country: str = ""
    country_code: str = ""
    latitude: float | None = None
    longitude: float | None = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass(frozen=True)
class Location:
    label: str = ""
    latitude: float | None = None
    longitude: float | None = None
    # coordinates before jitter, shared with peers that have the same label
    anchor: tuple[float, float] | None = None


@dataclass(frozen=True)
class ServerRecord:
    name: str
    address: str
    game_port: str
    map: str
    game_type: GameType
    ping: int
    max_players: int
    current_players: int
    has_password: bool
    min_rank: int
    max_rank: int
    location: str = ""
    perspective: int = Perspective.ANY
    latitude: float | None = None
    longitude: float | None = None
    anchor: tuple[float, float] | None = field(default=None, compare=False)

    @property
    def host(self) -> str:
        return self.address.rsplit(":", 1)[0]

    @property
    def join_address(self) -> str:
        return f"{self.host}:{self.game_port}"

    def row(self) -> tuple:
        """
        Table row for the server list: name, join address, game type, map,
        players, ping, location, password, min rank, max rank.
        """
        return (
            self.name,
            self.join_address,
            self.game_type.value,
            self.map,
            f"{self.current_players} / {self.max_players}",
            self.ping,
            self.location,
            "Yes" if self.has_password else "",
            self.min_rank,
            self.max_rank,
        )

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "addr": self.address,
            "game_port": self.game_port,
            "map": self.map,
            "gametype": self.game_type.value,
            "ping": self.ping,
            "players": self.current_players,
            "max_players": self.max_players,
            "password": self.has_password,
            "min_rank": self.min_rank,
            "max_rank": self.max_rank,
            "location": self.location,
            "perspective": int(self.perspective),
            "point": [self.longitude, self.latitude],
        }
