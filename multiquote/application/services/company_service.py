from __future__ import annotations

import logging
from typing import Optional

from ...domain.errors import NotFound, ValidationFailed
from ...domain.filters import COMPANY_FILTERS, COMPANY_SEARCH_COLUMNS, FilterCriteria, Page, PageResult
from ...domain.models import Company
from ...domain.ports.persistence import CompanyRepository
from ...services.object_storage import ObjectStorage
from .user_admin_service import UploadedImage, format_phone_number

logger = logging.getLogger(__name__)

COMPANY_LOGO_FOLDER = "company_logos"


class CompanyService:
    def __init__(
        self,
        companies: CompanyRepository,
        storage: ObjectStorage,
        phone_country_code: str = "234",
    ) -> None:
        self._companies = companies
        self._storage = storage
        self._country_code = phone_country_code

    async def create_company(
        self,
        *,
        name: str,
        email: Optional[str] = None,
        phone_number: Optional[str] = None,
        address: Optional[str] = None,
        logo: Optional[UploadedImage] = None,
    ) -> Company:
        if not name or not name.strip():
            raise ValidationFailed(["Company name is required"])
        formatted_phone = format_phone_number(phone_number, self._country_code) if phone_number else None
        logo_url = await self._upload(logo)
        company = self._companies.create_company(
            name=name.strip(),
            email=email,
            phone_number=formatted_phone,
            address=address,
            logo=logo_url,
        )
        logger.info("Created company %s (%s)", company.id, company.name)
        return company

    async def update_company(
        self,
        company_id: str,
        *,
        name: Optional[str] = None,
        email: Optional[str] = None,
        phone_number: Optional[str] = None,
        address: Optional[str] = None,
        logo: Optional[UploadedImage] = None,
    ) -> Company:
        if not self._companies.get_company(company_id):
            raise NotFound("Company not found")
        formatted_phone = format_phone_number(phone_number, self._country_code) if phone_number else None
        company = self._companies.update_company(
            company_id,
            name=name.strip() if name else None,
            email=email or None,
            phone_number=formatted_phone,
            address=address or None,
            logo=await self._upload(logo),
        )
        logger.info("Updated company %s", company.id)
        return company

    def list_companies(self, page: Page, search: Optional[str] = None) -> PageResult:
        criteria = FilterCriteria.build(
            COMPANY_FILTERS,
            {},
            search_columns=COMPANY_SEARCH_COLUMNS,
            search=search,
        )
        return self._companies.list_companies(criteria, page)

    async def _upload(self, logo: Optional[UploadedImage]) -> Optional[str]:
        if logo is None:
            return None
        return await self._storage.upload(logo.data, COMPANY_LOGO_FOLDER, logo.content_type)
