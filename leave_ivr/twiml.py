"""
Render dialogue prompts as TwiML voice responses.
"""

import xml.etree.ElementTree as ET

from leave_ivr.dialogue import Prompt

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'


def _say(parent: ET.Element, text: str, voice: str, language: str) -> None:
    element = ET.SubElement(parent, "Say", {"voice": voice, "language": language})
    element.text = text


def render_twiml(prompt: Prompt, voice: str = "alice", language: str = "en-IN") -> str:
    """
    Build the <Response> document for a prompt.

    Terminal prompts end with <Hangup/> so the provider closes the call and
    reports the final call status.
    """
    response = ET.Element("Response")

    for line in prompt.say:
        _say(response, line, voice, language)

    if prompt.gather is not None:
        gather = prompt.gather
        attrs = {
            "input": gather.input,
            "timeout": str(gather.timeout),
            "action": gather.action,
            "method": "POST",
            "speechTimeout": "auto",
        }
        if gather.num_digits is not None:
            attrs["numDigits"] = str(gather.num_digits)
        if gather.hints:
            attrs["hints"] = gather.hints

        element = ET.SubElement(response, "Gather", attrs)
        for line in gather.prompts:
            _say(element, line, voice, language)

    if prompt.redirect is not None:
        redirect = ET.SubElement(response, "Redirect", {"method": "POST"})
        redirect.text = prompt.redirect

    if prompt.is_terminal:
        ET.SubElement(response, "Hangup")

    return XML_DECLARATION + ET.tostring(response, encoding="unicode")
