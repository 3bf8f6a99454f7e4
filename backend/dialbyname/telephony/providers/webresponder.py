"""
Dial-by-Name Directory - NetSapiens Web Responder Renderer

Renders control documents as web responder XML:

    <Response>
        <Gather numDigits="4" timeout="10" action="https://.../directory">
            <Say voice="female" language="en-US">...</Say>
        </Gather>
    </Response>

Redirects to another URL use <Forward> with the URL; the platform POSTs
the call to it.
"""

from html import escape

from .base import (
    CallControlRenderer,
    ForwardDocument,
    GatherDocument,
    HangupDocument,
    RedirectDocument,
    VoiceSettings,
)


def _say(text: str, voice: VoiceSettings) -> str:
    return (
        f'<Say voice="{escape(voice.voice)}" language="{escape(voice.language)}">'
        f'{escape(text, quote=False)}</Say>'
    )


class WebResponderRenderer(CallControlRenderer):
    """XML renderer for the NetSapiens web responder."""

    @property
    def name(self) -> str:
        return "netsapiens"

    @property
    def media_type(self) -> str:
        return "application/xml"

    def render_gather(self, document: GatherDocument) -> str:
        attrs = []
        if document.dtmf_only:
            attrs.append('input="dtmf"')
        attrs.append(f'numDigits="{document.num_digits}"')
        attrs.append(f'timeout="{document.timeout}"')
        if document.action:
            attrs.append(f'action="{escape(document.action)}"')

        return (
            "<Response>"
            f"<Gather {' '.join(attrs)}>{_say(document.text, document.voice)}</Gather>"
            "</Response>"
        )

    def render_forward(self, document: ForwardDocument) -> str:
        xml = "<Response>"
        if document.prompts:
            xml += _say(document.text, document.voice)

        if document.by_caller:
            xml += f'<Forward ByCaller="{escape(document.by_caller)}">'
        else:
            xml += "<Forward>"
        xml += f"{escape(document.destination, quote=False)}</Forward>"

        return xml + "</Response>"

    def render_hangup(self, document: HangupDocument) -> str:
        xml = "<Response>"
        if document.prompts:
            xml += _say(document.text, document.voice)
        return xml + "<Hangup/></Response>"

    def render_redirect(self, document: RedirectDocument) -> str:
        xml = "<Response>"
        if document.prompts:
            xml += _say(document.text, document.voice)
        return xml + f"<Forward>{escape(document.url, quote=False)}</Forward></Response>"
