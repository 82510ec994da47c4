from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass
from typing import Optional

from ...domain.errors import Conflict, Forbidden, NotFound, ValidationFailed
from ...domain.filters import USER_FILTERS, USER_SEARCH_COLUMNS, FilterCriteria, Page, PageResult
from ...domain.models import BasicStatus, User, UserRole
from ...domain.ports.persistence import UserRepository
from ...services.email_service import EmailService
from ...services.object_storage import ObjectStorage
from .passwords import generate_random_password, hash_password

logger = logging.getLogger(__name__)

USER_IMAGE_FOLDER = "users"
SIGNATURE_FOLDER = "signatures"

_PHONE_PATTERN = re.compile(r"^\+?\d+$")


def format_phone_number(phone_number: str, country_code: str = "234") -> str:
    """Normalise a phone number to ``+<country code><subscriber>``."""
    value = phone_number.strip()
    if not _PHONE_PATTERN.match(value):
        raise ValidationFailed(["Invalid phone number format. Only numeric values are allowed."])
    value = value.lstrip("+")
    if value.startswith("0"):
        return f"+{country_code}{value[1:]}"
    if value.startswith(country_code):
        return f"+{value}"
    return f"+{country_code}{value}"


def gravatar_url(email: str) -> str:
    digest = hashlib.md5(email.strip().lower().encode("utf-8")).hexdigest()
    return f"https://www.gravatar.com/avatar/{digest}?d=identicon"


@dataclass(slots=True)
class UploadedImage:
    data: bytes
    content_type: Optional[str]
    filename: Optional[str] = None


class UserAdminService:
    """Account administration performed by ADMIN and SUPER_ADMIN callers."""

    def __init__(
        self,
        users: UserRepository,
        email_service: EmailService,
        storage: ObjectStorage,
        phone_country_code: str = "234",
    ) -> None:
        self._users = users
        self._email = email_service
        self._storage = storage
        self._country_code = phone_country_code

    async def create_user(
        self,
        *,
        first_name: str,
        last_name: str,
        email: str,
        role: UserRole = UserRole.USER,
        phone_number: Optional[str] = None,
        img: Optional[UploadedImage] = None,
        signature: Optional[UploadedImage] = None,
    ) -> User:
        if self._users.get_user_by_email(email):
            raise Conflict("Email already in use")
        formatted_phone = self._normalise_phone(phone_number)
        if formatted_phone and self._users.get_user_by_phone(formatted_phone):
            raise Conflict("Phone number already in use")

        img_url = await self._upload(img, USER_IMAGE_FOLDER) or gravatar_url(email)
        signature_url = await self._upload(signature, SIGNATURE_FOLDER)

        plain_password = generate_random_password()
        user = self._users.create_user(
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            email=email,
            password_hash=hash_password(plain_password),
            role=role,
            status=BasicStatus.ACTIVE,
            phone_number=formatted_phone,
            img=img_url,
            signature=signature_url,
        )
        logger.info("Created %s account %s", user.role.value, user.id)
        await self._email.send_user_password_email(user.email, user.first_name, plain_password, "create")
        return user

    async def edit_user(
        self,
        user_id: str,
        actor: User,
        *,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        email: Optional[str] = None,
        phone_number: Optional[str] = None,
        role: Optional[UserRole] = None,
        password: Optional[str] = None,
        img: Optional[UploadedImage] = None,
        signature: Optional[UploadedImage] = None,
    ) -> User:
        user = self._users.get_user_by_id(user_id)
        if not user:
            raise NotFound("User not found")
        if user.role == UserRole.SUPER_ADMIN and not (actor.role == UserRole.SUPER_ADMIN and password):
            raise Forbidden("Cannot edit SUPER_ADMIN details")

        if email and email.strip().lower() != user.email:
            if self._users.get_user_by_email(email):
                raise Conflict("Email already in use")
        else:
            email = None

        formatted_phone = self._normalise_phone(phone_number)
        if formatted_phone and formatted_phone != user.phone_number:
            if self._users.get_user_by_phone(formatted_phone):
                raise Conflict("Phone number already in use")

        if user.role == UserRole.SUPER_ADMIN:
            role = None

        updated = self._users.update_user(
            user.id,
            first_name=first_name or None,
            last_name=last_name or None,
            email=email,
            phone_number=formatted_phone,
            role=role,
            password_hash=hash_password(password) if password else None,
            img=await self._upload(img, USER_IMAGE_FOLDER),
            signature=await self._upload(signature, SIGNATURE_FOLDER),
        )
        logger.info("User %s edited by %s", updated.id, actor.id)
        if password:
            await self._email.send_user_password_email(updated.email, updated.first_name, password, "update")
        return updated

    def toggle_status(self, user_id: str) -> User:
        user = self._users.get_user_by_id(user_id)
        if not user:
            raise NotFound("User not found")
        if user.role == UserRole.SUPER_ADMIN:
            raise Forbidden("Cannot change status of a SUPER_ADMIN user")
        new_status = BasicStatus.INACTIVE if user.is_active else BasicStatus.ACTIVE
        updated = self._users.update_user(user.id, status=new_status)
        logger.info("User %s is now %s", updated.id, updated.status.value)
        return updated

    def list_users(
        self,
        page: Page,
        *,
        search: Optional[str] = None,
        role: Optional[UserRole] = None,
        status: Optional[BasicStatus] = None,
    ) -> PageResult:
        criteria = FilterCriteria.build(
            USER_FILTERS,
            {"role": role, "status": status},
            search_columns=USER_SEARCH_COLUMNS,
            search=search,
        )
        return self._users.list_users(criteria, page)

    def ensure_initial_admins(
        self,
        super_admin: tuple[Optional[str], Optional[str]],
        admin: tuple[Optional[str], Optional[str]],
    ) -> None:
        """Create the bootstrap SUPER_ADMIN and ADMIN accounts when missing."""
        candidates = [
            (super_admin, "Super", "Admin", UserRole.SUPER_ADMIN),
            (admin, "Admin", "User", UserRole.ADMIN),
        ]
        for (email, password), first_name, last_name, role in candidates:
            if not email or not password:
                continue
            if self._users.get_user_by_email(email):
                logger.info("%s already exists. Skipping creation.", role.value)
                continue
            self._users.create_user(
                first_name=first_name,
                last_name=last_name,
                email=email,
                password_hash=hash_password(password),
                role=role,
                status=BasicStatus.ACTIVE,
            )
            logger.info("Created bootstrap %s account for %s", role.value, email)

    def _normalise_phone(self, phone_number: Optional[str]) -> Optional[str]:
        if not phone_number:
            return None
        return format_phone_number(phone_number, self._country_code)

    async def _upload(self, image: Optional[UploadedImage], folder: str) -> Optional[str]:
        if image is None:
            return None
        return await self._storage.upload(image.data, folder, image.content_type)
