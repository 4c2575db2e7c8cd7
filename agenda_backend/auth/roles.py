from enum import Enum

from agenda_backend.models.user import User


class Role(str, Enum):
    CLIENT = "client"
    PROFESSIONAL = "professional"
    CLINIC = "clinic"
    ADMIN = "admin"


def user_roles(user: User) -> set[Role]:
    roles: set[Role] = set()
    for value in user.roles or []:
        try:
            roles.add(Role(str(value).strip().lower()))
        except ValueError:
            continue
    return roles


def has_role(user: User, role: Role) -> bool:
    return role in user_roles(user)
