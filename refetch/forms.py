"""
Pulls form fields out of a multipart body, approximately.

This is not a MIME parser. It only understands the `name="..."` parameter of
each part, assumes the whole body is text, and ignores nested parts and every
other part header.
"""

import logging
import re

from .model import FormData


logger = logging.getLogger(__name__)


BOUNDARY_PATTERN = re.compile(r'^--\w+')


def extract_form_fields(text: str) -> FormData:
    form = FormData()

    boundary = BOUNDARY_PATTERN.match(text)
    if boundary is None:
        logger.debug('No multipart boundary at the start of the body. No form fields extracted.')
        return form

    field_pattern = re.compile(
        r'name="([^"]+)"\s*\r\n\r\n([\s\S]*?)\r\n' + re.escape(boundary.group(0)))
    for match in field_pattern.finditer(text):
        form.append(match.group(1), match.group(2).strip())

    logger.debug('Extracted {} form field(s) using boundary {}'.format(len(form), boundary.group(0)))
    return form
