"""
Dial-by-Name Directory - Call-Control Documents

Provider-neutral description of what the telephony platform should do next,
and the abstract renderer that turns it into the provider's wire format.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Tuple, Union


@dataclass(frozen=True)
class VoiceSettings:
    """Language and voice used for every spoken prompt."""
    language: str = "en-US"
    voice: str = "female"


@dataclass(frozen=True)
class GatherDocument:
    """Speak a prompt, collect digits, then call back the action URL."""
    prompts: Tuple[str, ...]
    num_digits: int
    action: str
    voice: VoiceSettings = VoiceSettings()
    timeout: int = 10
    dtmf_only: bool = False

    @property
    def text(self) -> str:
        return " ".join(self.prompts)


@dataclass(frozen=True)
class ForwardDocument:
    """Optionally speak, then transfer the call to a destination."""
    destination: str
    prompts: Tuple[str, ...] = ()
    by_caller: Optional[str] = None
    voice: VoiceSettings = VoiceSettings()

    @property
    def text(self) -> str:
        return " ".join(self.prompts)


@dataclass(frozen=True)
class HangupDocument:
    """Optionally speak, then hang up."""
    prompts: Tuple[str, ...] = ()
    voice: VoiceSettings = VoiceSettings()

    @property
    def text(self) -> str:
        return " ".join(self.prompts)


@dataclass(frozen=True)
class RedirectDocument:
    """Optionally speak, then hand the call to a different URL."""
    url: str
    prompts: Tuple[str, ...] = ()
    voice: VoiceSettings = VoiceSettings()

    @property
    def text(self) -> str:
        return " ".join(self.prompts)


ControlDocument = Union[GatherDocument, ForwardDocument, HangupDocument, RedirectDocument]


class CallControlRenderer(ABC):
    """
    Abstract base class for call-control renderers.

    Implementations handle provider-specific:
    - Document vocabulary (XML verbs, JSON actions, ...)
    - Response media type
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name."""
        ...

    @property
    @abstractmethod
    def media_type(self) -> str:
        """HTTP media type of rendered documents."""
        ...

    def render(self, document: ControlDocument) -> str:
        """Render any control document."""
        if isinstance(document, GatherDocument):
            return self.render_gather(document)
        if isinstance(document, ForwardDocument):
            return self.render_forward(document)
        if isinstance(document, HangupDocument):
            return self.render_hangup(document)
        if isinstance(document, RedirectDocument):
            return self.render_redirect(document)
        raise TypeError(f"Unsupported control document: {type(document).__name__}")

    @abstractmethod
    def render_gather(self, document: GatherDocument) -> str:
        ...

    @abstractmethod
    def render_forward(self, document: ForwardDocument) -> str:
        ...

    @abstractmethod
    def render_hangup(self, document: HangupDocument) -> str:
        ...

    @abstractmethod
    def render_redirect(self, document: RedirectDocument) -> str:
        ...
