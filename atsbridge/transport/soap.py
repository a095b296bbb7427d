"""
SOAP transport.

Serializes a nested mapping into a SOAP 1.1 envelope with a WS-Security
UsernameToken header, posts it, and deserializes the response envelope back
into a nested mapping.

Message mapping conventions:

    {"Request_Criteria": {                       <ins0:Request_Criteria>
        "Job_Requisition_Reference": [             <ins0:Job_Requisition_Reference>
            {"ID": {"content!": "R1",                <ins0:ID ins0:type="Job_Requisition_ID">R1</ins0:ID>
                    "@ins0:type": "Job_Requisition_ID"}},
            ...                                    </ins0:Job_Requisition_Reference>
        ],                                         ...
        "Show_Only_Active_Job_Postings": True,     <ins0:Show_Only_Active_Job_Postings>true</...>
    }}                                           </ins0:Request_Criteria>

- ``content!`` is the element text, ``@prefix:name`` keys are attributes
- lists repeat the element, booleans render as ``true``/``false``
- unprefixed element names are qualified with the configured namespace

Responses use the same shape: namespaces are stripped, repeated elements
become lists, attributes become ``@name`` keys and text next to attributes
is stored under ``content!``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any
from xml.etree import ElementTree as ET

from atsbridge.auth import WSSecurityToken
from atsbridge.config import SoapProviderConfig
from atsbridge.errors import ResponseParseError
from atsbridge.models import RequestSpec, ResponseDescriptor, SoapFault
from atsbridge.observability import MetricsSink
from atsbridge.transport.base import HttpxTransport

logger = logging.getLogger(__name__)

SOAP_ENV_NS = "http://schemas.xmlsoap.org/soap/envelope/"
WSSE_NS = "http://docs.oasis-open.org/wss/2004/01/oasis-200401-wss-wssecurity-secext-1.0.xsd"
PASSWORD_TEXT = (
    "http://docs.oasis-open.org/wss/2004/01/oasis-200401-wss-username-token-profile-1.0#PasswordText"
)
TEXT_KEY = "content!"

ET.register_namespace("env", SOAP_ENV_NS)
ET.register_namespace("wsse", WSSE_NS)


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1] if "}" in tag else tag.split(":")[-1]


def _text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


# =============================================================================
# Envelope codec
# =============================================================================


class EnvelopeCodec:
    """Builds request envelopes and parses response envelopes."""

    def __init__(self, namespaces: Mapping[str, str], namespace_identifier: str):
        self.namespaces = dict(namespaces)
        self.namespace_identifier = namespace_identifier
        for prefix, uri in self.namespaces.items():
            ET.register_namespace(prefix, uri)

    @property
    def namespace(self) -> str:
        return self.namespaces[self.namespace_identifier]

    def _qname(self, name: str) -> str:
        prefix, _, local = name.rpartition(":")
        uri = self.namespaces.get(prefix) if prefix else self.namespace
        if uri is None:
            raise ValueError(f"Unknown namespace prefix '{prefix}' in '{name}'")
        return f"{{{uri}}}{local}"

    def _attr_name(self, name: str) -> str:
        if ":" not in name:
            return name
        return self._qname(name)

    def _append(self, parent: ET.Element, key: str, value: Any) -> None:
        if isinstance(value, (list, tuple)):
            for item in value:
                self._append(parent, key, item)
            return

        element = ET.SubElement(parent, self._qname(key))
        if isinstance(value, Mapping):
            for child_key, child_value in value.items():
                if child_key == TEXT_KEY:
                    element.text = _text(child_value)
                elif child_key.startswith("@"):
                    element.set(self._attr_name(child_key[1:]), _text(child_value))
                else:
                    self._append(element, child_key, child_value)
        elif value is not None:
            element.text = _text(value)

    def build(
        self,
        message_tag: str,
        message: Mapping[str, Any] | None,
        *,
        auth: WSSecurityToken | None = None,
        version: str | None = None,
    ) -> bytes:
        envelope = ET.Element(f"{{{SOAP_ENV_NS}}}Envelope")
        header = ET.SubElement(envelope, f"{{{SOAP_ENV_NS}}}Header")
        if auth is not None:
            security = ET.SubElement(header, f"{{{WSSE_NS}}}Security")
            token = ET.SubElement(security, f"{{{WSSE_NS}}}UsernameToken")
            ET.SubElement(token, f"{{{WSSE_NS}}}Username").text = auth.username
            password = ET.SubElement(token, f"{{{WSSE_NS}}}Password", {"Type": PASSWORD_TEXT})
            password.text = auth.password

        body = ET.SubElement(envelope, f"{{{SOAP_ENV_NS}}}Body")
        root = ET.SubElement(body, self._qname(message_tag))
        if version:
            root.set(self._qname("version"), version)
        for key, value in (message or {}).items():
            if key.startswith("@"):
                root.set(self._attr_name(key[1:]), _text(value))
            else:
                self._append(root, key, value)

        return ET.tostring(envelope, encoding="utf-8", xml_declaration=True)

    def parse(self, content: bytes) -> tuple[dict[str, Any], SoapFault | None]:
        """
        Parse a response envelope.

        Returns:
            (body mapping, fault or None)

        Raises:
            ValueError: If the content is not a SOAP envelope
        """
        try:
            root = ET.fromstring(content)
        except ET.ParseError as e:
            raise ValueError(f"Invalid XML: {e}") from e

        if _local(root.tag) != "Envelope":
            raise ValueError(f"Expected SOAP Envelope, got {_local(root.tag)}")
        body = next((child for child in root if _local(child.tag) == "Body"), None)
        if body is None:
            raise ValueError("SOAP Envelope has no Body")

        children = list(body)
        if not children:
            return {}, None

        first = children[0]
        if _local(first.tag) == "Fault":
            return {}, self._fault(first)
        return {_local(first.tag): self._to_data(first)}, None

    def _fault(self, element: ET.Element) -> SoapFault:
        values = {_local(child.tag): "".join(child.itertext()).strip() for child in element}
        # SOAP 1.2 names the parts Code/Reason
        code = values.get("faultcode") or values.get("Code") or ""
        message = values.get("faultstring") or values.get("Reason") or ""
        return SoapFault(code=code, message=message)

    def _to_data(self, element: ET.Element) -> Any:
        children = list(element)
        attributes = {f"@{_local(name)}": value for name, value in element.attrib.items()}
        text = (element.text or "").strip()

        if not children and not attributes:
            return text or None

        data: dict[str, Any] = dict(attributes)
        if not children:
            if text:
                data[TEXT_KEY] = text
            return data

        for child in children:
            key = _local(child.tag)
            value = self._to_data(child)
            if key in data:
                existing = data[key]
                if isinstance(existing, list):
                    existing.append(value)
                else:
                    data[key] = [existing, value]
            else:
                data[key] = value
        return data


# =============================================================================
# Transport
# =============================================================================


class SoapTransport(HttpxTransport):
    """
    Posts SOAP envelopes to a service endpoint.

    The endpoint is ``spec.path`` when the request carries one (it depends on
    the tenant's credentials), else the endpoint given at construction.
    A fault in the response body is returned as ``ResponseDescriptor.fault``
    rather than raised; redirects are returned with their status untouched.
    """

    def __init__(
        self,
        config: SoapProviderConfig,
        provider: str,
        endpoint: str | None = None,
        *,
        integration_id: str | None = None,
        metrics: MetricsSink | None = None,
        http_transport=None,
    ):
        super().__init__(
            provider,
            timeout=config.timeout,
            pool_size=config.pool_size,
            pool_timeout=config.pool_timeout,
            integration_id=integration_id,
            metrics=metrics,
            http_transport=http_transport,
        )
        self.config = config
        self.endpoint = endpoint
        self.codec = EnvelopeCodec(config.namespaces, config.namespace_identifier)

    async def send(self, spec: RequestSpec) -> ResponseDescriptor:
        if not spec.message_tag:
            raise ValueError(f"SOAP operation '{spec.operation}' has no message tag")
        endpoint = spec.path or self.endpoint
        if not endpoint:
            raise ValueError(f"SOAP operation '{spec.operation}' has no endpoint")

        auth = spec.auth if isinstance(spec.auth, WSSecurityToken) else None
        envelope = self.codec.build(
            spec.message_tag,
            spec.message,
            auth=auth,
            version=self.config.api_version,
        )
        headers = {
            "Content-Type": "text/xml; charset=utf-8",
            "SOAPAction": f'"{spec.action or ""}"',
            **dict(spec.headers),
        }

        response = await self._request(
            spec,
            method="POST",
            url=endpoint,
            content=envelope,
            headers=headers,
        )

        descriptor = ResponseDescriptor(
            status=response.status_code,
            headers=response.headers,
            content=response.content,
        )
        if not response.content.strip():
            descriptor.data = {} if response.is_success else None
            return descriptor

        try:
            descriptor.data, descriptor.fault = self.codec.parse(response.content)
        except ValueError as e:
            if response.is_success:
                raise ResponseParseError(
                    f"Unparsable SOAP response: {e}",
                    self.provider,
                    status_code=response.status_code,
                    operation=spec.operation,
                    response_body=response.text[:500],
                ) from e
            # Non-SOAP error page; the status alone classifies it
            logger.debug(f"[{self.provider}] Non-envelope body for status {response.status_code}")
        return descriptor


__all__ = ["EnvelopeCodec", "SoapTransport"]
