"""Request bodies, allowed option values and their validation rules."""
from __future__ import annotations
from typing import List, Literal, Optional
from urllib.parse import urlparse

from pydantic import BaseModel

TaskKind = Literal["generation", "edit", "refinement"]

ALLOWED_SIZES = ("512x512", "768x768", "1024x768", "1024x1024")
ALLOWED_STYLES = ("default", "modern", "minimalist", "artistic", "photorealistic")
ALLOWED_ASPECT_RATIOS = ("1:1", "4:3", "16:9", "9:16")

DEFAULT_SIZE = "1024x768"
DEFAULT_STYLE = "default"
DEFAULT_GENERATION_ASPECT_RATIO = "16:9"
DEFAULT_EDIT_ASPECT_RATIO = "1:1"

MAX_PROMPT_LENGTH = 1000
MIN_IMAGES = 1
MAX_IMAGES = 10


def generation_options() -> dict:
    return {
        "sizes": list(ALLOWED_SIZES),
        "styles": list(ALLOWED_STYLES),
        "aspectRatios": list(ALLOWED_ASPECT_RATIOS),
    }


def check_prompt(prompt: Optional[str], label: str = "Prompt") -> List[str]:
    if prompt is None or not prompt.strip():
        return [f"{label} is required"]
    if len(prompt) > MAX_PROMPT_LENGTH:
        return [f"{label} must be at most {MAX_PROMPT_LENGTH} characters"]
    return []


def check_choice(value: Optional[str], allowed, label: str) -> List[str]:
    if value and value not in allowed:
        return [f"{label} must be one of: {', '.join(allowed)}"]
    return []


def check_image_count(count: int) -> List[str]:
    if count < MIN_IMAGES:
        return [f"At least {MIN_IMAGES} image is required"]
    if count > MAX_IMAGES:
        return [f"Maximum {MAX_IMAGES} images allowed. Got {count}"]
    return []


class GenerateRequest(BaseModel):
    prompt: Optional[str] = None
    size: Optional[str] = None
    style: Optional[str] = None
    aspectRatio: Optional[str] = None

    def validation_errors(self) -> List[str]:
        errors = check_prompt(self.prompt)
        errors += check_choice(self.size, ALLOWED_SIZES, "Size")
        errors += check_choice(self.style, ALLOWED_STYLES, "Style")
        errors += check_choice(self.aspectRatio, ALLOWED_ASPECT_RATIOS, "Aspect ratio")
        return errors


class EditParams(BaseModel):
    """Form fields that accompany an edit upload."""
    editPrompt: Optional[str] = None
    style: Optional[str] = None
    aspectRatio: Optional[str] = None

    def validation_errors(self, image_count: int) -> List[str]:
        errors = check_prompt(self.editPrompt, "Edit prompt")
        errors += check_choice(self.style, ALLOWED_STYLES, "Style")
        errors += check_choice(self.aspectRatio, ALLOWED_ASPECT_RATIOS, "Aspect ratio")
        errors += check_image_count(image_count)
        return errors


class RefineRequest(BaseModel):
    imageUrl: Optional[str] = None
    editPrompt: Optional[str] = None
    style: Optional[str] = None
    aspectRatio: Optional[str] = None

    def validation_errors(self) -> List[str]:
        errors: List[str] = []
        if not self.imageUrl:
            errors.append("Image URL is required")
        elif urlparse(self.imageUrl).scheme not in ("http", "https"):
            errors.append("Image URL must be an http(s) URL")
        errors += check_prompt(self.editPrompt, "Edit prompt")
        errors += check_choice(self.style, ALLOWED_STYLES, "Style")
        errors += check_choice(self.aspectRatio, ALLOWED_ASPECT_RATIOS, "Aspect ratio")
        return errors


class DownloadRequest(BaseModel):
    imageUrl: Optional[str] = None


class EnhanceRequest(BaseModel):
    prompt: Optional[str] = None


class PreferencesUpdate(BaseModel):
    preferredSize: Optional[str] = None
    preferredStyle: Optional[str] = None
    preferredAspectRatio: Optional[str] = None
    lastActiveMode: Optional[Literal["generation", "edit"]] = None

    def validation_errors(self) -> List[str]:
        errors = check_choice(self.preferredSize, ALLOWED_SIZES, "Preferred size")
        errors += check_choice(self.preferredStyle, ALLOWED_STYLES, "Preferred style")
        errors += check_choice(self.preferredAspectRatio, ALLOWED_ASPECT_RATIOS, "Preferred aspect ratio")
        return errors
