from dataclasses import dataclass, field

@dataclass
class RegisterUserInput:
    email: str
    password: str
    name: str | None = None
    institution: str | None = None
    mobile: str | None = None

@dataclass
class ProfileUpdate:
    name: str | None = None
    institution: str | None = None
    mobile: str | None = None

@dataclass
class AccessStats:
    users_by_role: dict[str, int] = field(default_factory=dict)
    requests_by_status: dict[str, int] = field(default_factory=dict)
