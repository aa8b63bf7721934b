"""Listing publication workflow: stage fields and images, then upload and write in one submit."""

import base64
import binascii
import mimetypes
import re
from typing import Optional

from pydantic import BaseModel, Field

from urbannest.models.action import ActionResult
from urbannest.models.listing import Listing, ListingPayload
from urbannest.models.profile import Profile
from urbannest.services import assistant
from urbannest.services.listing_collection import load_listing_for_edit
from urbannest.utils.errors import (
    AuthorizationError,
    GenerationError,
    ListingValidationError,
    SchemaMismatchError,
    SupabaseError,
)
from urbannest.utils.logging import (
    correlation_context,
    get_structured_logger,
    log_timing,
    mask_user_id,
)

logger = get_structured_logger(__name__)

DEFAULT_CATEGORY = "Apartment"
_DATA_URI = re.compile(r"^data:(?P<mime>[\w/+.-]+)?(?:;[\w=.-]+)*;base64,(?P<data>.*)$", re.DOTALL)


class StagedImage(BaseModel):
    """An image in the form: a local data URI awaiting upload, or an already persisted URL."""
    source: str = Field(..., description="data: URI or http(s) URL")

    @property
    def is_local(self) -> bool:
        return self.source.startswith("data:")


class ListingForm(BaseModel):
    """Editable listing fields as the form holds them."""
    title: str = ""
    location: str = ""
    area: str = ""
    category: str = DEFAULT_CATEGORY
    rent: float = 0
    sqft: float = 1200
    bedrooms: int = 2
    bathrooms: int = 2
    balconies: int = 1
    description: str = ""
    features: str = Field(default="", description="Comma-separated amenities")


def normalize_features(raw: str) -> list[str]:
    """'Lift, , Generator ' -> ['Lift', 'Generator']"""
    return [token.strip() for token in (raw or "").split(",") if token.strip()]


def decode_data_uri(uri: str) -> tuple[bytes, str, str]:
    """Return (content, content_type, extension) for a base64 data URI."""
    match = _DATA_URI.match(uri or "")
    if not match:
        raise ListingValidationError("Unsupported image data.")
    content_type = match.group("mime") or "application/octet-stream"
    try:
        content = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ListingValidationError("Image data is corrupted.") from e
    extension = mimetypes.guess_extension(content_type) or ".bin"
    if extension == ".jpe":
        extension = ".jpg"
    return content, content_type, extension.lstrip(".")


def encode_data_uri(content: bytes, content_type: str) -> str:
    return f"data:{content_type};base64,{base64.b64encode(content).decode('ascii')}"


def validate_draft(form: ListingForm, images: list[StagedImage]) -> None:
    """Local checks that must pass before any remote call."""
    missing = [
        label for label, value in (("Title", form.title), ("Area", form.area))
        if not (value or "").strip()
    ]
    if missing:
        raise ListingValidationError(f"Please fill in: {', '.join(missing)}.")
    if not (form.category or "").strip():
        raise ListingValidationError("Please choose a category.")
    if form.rent <= 0:
        raise ListingValidationError("Please enter the monthly rent.")
    if min(form.sqft, form.bedrooms, form.bathrooms, form.balconies) < 0:
        raise ListingValidationError("Counts and sizes cannot be negative.")
    if not images:
        raise ListingValidationError("At least one image is required.")


class PublicationWorkflow:
    """Create or edit one listing.

    Submitting runs: validate, upload staged images, require at least one
    image, set the thumbnail, normalise features, write the record, redirect.
    Any failing step stops the rest. The sequence is not atomic: images
    uploaded before a failed write stay in storage and are logged.
    """

    def __init__(self, gateway, user: Optional[Profile]):
        self.gateway = gateway
        self.user = user
        self.form = ListingForm()
        self.images: list[StagedImage] = []
        self.editing_id: Optional[str] = None
        self.status_text = ""
        self.busy = False
        self.generating = False

    def _guard_owner(self) -> Optional[ActionResult]:
        if self.user is None or not self.user.is_owner:
            return ActionResult.failure("Owner access only.", redirect_to="/")
        return None

    def open_new(self) -> ActionResult:
        refused = self._guard_owner()
        if refused:
            return refused
        self.form = ListingForm()
        self.images = []
        self.editing_id = None
        return ActionResult.success()

    async def open_edit(self, listing_id: str) -> ActionResult:
        """Authorize, then pre-fill the form from the stored listing."""
        refused = self._guard_owner()
        if refused:
            return refused
        try:
            listing = await load_listing_for_edit(self.gateway, listing_id, self.user.id)
        except AuthorizationError as e:
            return ActionResult.failure(str(e), redirect_to="/")
        except SupabaseError as e:
            logger.warning("Listing fetch for edit failed", listing_id=listing_id, error=str(e))
            return ActionResult.failure("Could not load this listing.", redirect_to="/")

        self.editing_id = listing.id
        self.form = form_from_listing(listing)
        self.images = [StagedImage(source=url) for url in listing.images]
        return ActionResult.success(value=listing)

    def add_image(self, data_uri: str) -> None:
        if not data_uri.startswith("data:"):
            raise ListingValidationError("Only local images can be added.")
        self.images.append(StagedImage(source=data_uri))

    def add_image_bytes(self, content: bytes, content_type: str) -> None:
        self.images.append(StagedImage(source=encode_data_uri(content, content_type)))

    def remove_image(self, index: int) -> None:
        """Drop a staged or persisted image from the form; nothing remote happens."""
        if 0 <= index < len(self.images):
            del self.images[index]

    async def generate_description(self) -> ActionResult:
        """Replace the description with an LLM draft; failure keeps the current text."""
        if not self.form.title.strip():
            return ActionResult.failure("Please provide a Title first!")
        self.generating = True
        try:
            text = await assistant.generate_property_description(
                title=self.form.title,
                location=self.form.location or self.form.area,
                rent=self.form.rent,
                features=normalize_features(self.form.features),
            )
        except GenerationError as e:
            logger.warning("AI description unavailable", error=str(e))
            return ActionResult.failure()
        finally:
            self.generating = False
        self.form.description = text
        return ActionResult.success(value=text)

    async def _upload_staged(self) -> list[str]:
        uploaded: list[str] = []
        decoded = [decode_data_uri(image.source) for image in self.images if image.is_local]
        for index, (content, content_type, extension) in enumerate(decoded, start=1):
            self.status_text = f"Uploading photos ({index}/{len(decoded)})..."
            try:
                uploaded.append(await self.gateway.upload_image(content, extension, content_type))
            except SupabaseError:
                self._log_orphans(uploaded, "image upload")
                raise
        return uploaded

    def _log_orphans(self, urls: list[str], failed_step: str) -> None:
        if urls:
            logger.warning(
                "Uploaded images left without a listing",
                failed_step=failed_step,
                orphaned_urls=urls,
                orphaned_count=len(urls)
            )

    def build_payload(self, images: list[str]) -> ListingPayload:
        if not images:
            raise ListingValidationError("At least one image is required.")
        return ListingPayload(
            owner_id=self.user.id,
            title=self.form.title.strip(),
            description=self.form.description,
            location=self.form.location.strip(),
            area=self.form.area.strip(),
            rent=float(self.form.rent),
            sqft=float(self.form.sqft),
            bedrooms=self.form.bedrooms,
            bathrooms=self.form.bathrooms,
            balconies=self.form.balconies,
            category=self.form.category.strip(),
            features=normalize_features(self.form.features),
            images=images,
            thumbnail=images[0],
            is_available=True,
        )

    async def publish(self) -> ActionResult:
        """Submit the form; every log line of one submit shares a correlation ID."""
        with correlation_context():
            return await self._submit()

    async def _submit(self) -> ActionResult:
        refused = self._guard_owner()
        if refused:
            return refused

        try:
            validate_draft(self.form, self.images)
        except ListingValidationError as e:
            return ActionResult.failure(str(e))

        self.busy = True
        self.status_text = "Starting..."
        uploaded: list[str] = []
        try:
            with log_timing("publish_listing", logger=logger, user_id=mask_user_id(self.user.id)):
                remote = [image.source for image in self.images if not image.is_local]
                uploaded = await self._upload_staged()
                payload = self.build_payload(remote + uploaded)

                self.status_text = "Updating database..."
                data = payload.model_dump()
                if self.editing_id:
                    row = await self.gateway.update_listing(self.editing_id, data)
                else:
                    row = await self.gateway.create_listing(data)
        except ListingValidationError as e:
            self._log_orphans(uploaded, "validation")
            return ActionResult.failure(str(e))
        except SchemaMismatchError as e:
            self._log_orphans(uploaded, "listing write")
            logger.error("Listing write hit a schema mismatch", column=e.column, error=str(e))
            return ActionResult.failure(e.remediation)
        except SupabaseError as e:
            self._log_orphans(uploaded, "listing write")
            return ActionResult.failure(str(e) or "An unexpected error occurred. Please try again.")
        finally:
            self.busy = False
            self.status_text = ""

        listing = Listing.from_row(row)
        listing_id = listing.id or self.editing_id
        message = "Listing updated successfully!" if self.editing_id else "Property published successfully!"
        logger.info(
            "Listing published",
            listing_id=listing_id,
            edited=bool(self.editing_id),
            images_count=len(listing.images)
        )
        self.images = [StagedImage(source=url) for url in listing.images]
        self.editing_id = listing_id
        return ActionResult.success(message, redirect_to=f"/listing/{listing_id}", value=listing)


def form_from_listing(listing: Listing) -> ListingForm:
    """Pre-fill the editor, joining stored features back into one string."""
    return ListingForm(
        title=listing.title or "",
        location=listing.location or "",
        area=listing.area or "",
        category=listing.category or DEFAULT_CATEGORY,
        rent=listing.rent or 0,
        sqft=listing.sqft or 0,
        bedrooms=listing.bedrooms or 0,
        bathrooms=listing.bathrooms or 0,
        balconies=listing.balconies or 0,
        description=listing.description or "",
        features=", ".join(listing.features),
    )
