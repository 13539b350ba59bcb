from ...domain.entities import Role, User
from ...domain.errors import BadRequest, Forbidden, NotFound
from ..authority import is_super_admin, normalize_email
from ..dto import ProfileUpdate, RegisterUserInput

class IUserRepository:
    def get_by_id(self, user_id: str) -> User | None: ...
    def get_by_email(self, email: str) -> User | None: ...
    def create(self, data: RegisterUserInput, password_hash: str, role: Role = Role.STUDENT) -> User: ...
    def set_role(self, user_id: str, role: Role) -> bool: ...
    def update_profile(self, user_id: str, data: ProfileUpdate) -> User | None: ...
    def list_all(self) -> list[User]: ...
    def count_by_role(self) -> dict[Role, int]: ...

class IPasswordHasher:
    def hash(self, plain: str) -> str: ...

class RegisterUser:
    def __init__(self, repo: IUserRepository, hasher: IPasswordHasher, reviewer_email: str | None = None):
        self.repo = repo
        self.hasher = hasher
        self.reviewer_email = reviewer_email

    def execute(self, data: RegisterUserInput) -> User:
        email = normalize_email(data.email)
        if "@" not in email:
            raise BadRequest("Invalid email")
        if len(data.password) < 6:
            raise BadRequest("Password too short")
        # учётку ревьюера заводит только ProvisionReviewer при старте
        if is_super_admin(email, self.reviewer_email):
            raise Forbidden("This account cannot be self-registered", event="reviewer_self_registration")
        if self.repo.get_by_email(email):
            raise BadRequest("Email already registered")
        pwd_hash = self.hasher.hash(data.password)
        data.email = email
        return self.repo.create(data, pwd_hash, role=Role.STUDENT)

class ProvisionReviewer:
    """Создаёт учётку ревьюера из конфигурации, если её ещё нет.

    Без email или пароля в настройках ничего не делает. Существующую
    учётку не трогает: пароль меняется только вне сервиса.
    """

    def __init__(self, repo: IUserRepository, hasher: IPasswordHasher,
                 reviewer_email: str | None, password: str | None):
        self.repo = repo
        self.hasher = hasher
        self.reviewer_email = reviewer_email
        self.password = password

    def execute(self) -> User | None:
        email = normalize_email(self.reviewer_email)
        if not email or not self.password:
            return None
        existing = self.repo.get_by_email(email)
        if existing is not None:
            return existing
        data = RegisterUserInput(email=email, password=self.password, name="Super Admin")
        return self.repo.create(data, self.hasher.hash(self.password), role=Role.SUPER_ADMIN)

class UpdateProfile:
    def __init__(self, repo: IUserRepository):
        self.repo = repo

    def execute(self, user_id: str, data: ProfileUpdate) -> User:
        user = self.repo.update_profile(user_id, data)
        if user is None:
            raise NotFound("User not found")
        return user
