from pydantic import BaseModel, ConfigDict, Field

from dam.components.uploads.models import UploadLimits


class UploadRules(BaseModel):
    model_config = ConfigDict(extra="forbid")

    max_tags: int = Field(ge=0)
    max_title_length: int = Field(ge=1)
    max_description_length: int = Field(ge=0)
    max_file_name_length: int = Field(ge=8)
    min_carousel_items: int = Field(ge=1)
    max_carousel_items: int = Field(ge=1)
    carousel_mime_prefixes: list[str]
    credential_ttl_seconds: int = Field(gt=0)
    credential_retry_attempts: int = Field(ge=0, le=3)
    verify_objects_on_finalize: bool = False

    def to_limits(self) -> UploadLimits:
        return UploadLimits(
            max_tags=self.max_tags,
            max_description_length=self.max_description_length,
            max_title_length=self.max_title_length,
            max_file_name_length=self.max_file_name_length,
            min_carousel_items=self.min_carousel_items,
            max_carousel_items=self.max_carousel_items,
            carousel_mime_prefixes=tuple(self.carousel_mime_prefixes),
            credential_ttl_seconds=self.credential_ttl_seconds,
            credential_retry_attempts=self.credential_retry_attempts,
            verify_objects_on_finalize=self.verify_objects_on_finalize,
        )


class StorageRules(BaseModel):
    upload_base_url: str
    public_base_url: str


class AuditRules(BaseModel):
    default_page_size: int = Field(ge=1)
    max_page_size: int = Field(ge=1)


class Rules(BaseModel):
    uploads: UploadRules
    storage: StorageRules
    audit: AuditRules
