"""Task template models, loader and builder exports."""

from .builder import instantiate_template
from .loader import TaskTemplate, TemplateLoadError, TemplateLoader
from .models import RequirementDraft

__all__ = [
    "RequirementDraft",
    "TaskTemplate",
    "TemplateLoadError",
    "TemplateLoader",
    "instantiate_template",
]
