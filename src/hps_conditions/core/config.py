"""
Parsing of the XML configuration document.

The document has a ``tables`` section describing each conditions table and a
``converters`` section listing converter classes::

    <conditions>
      <tables>
        <table name="ecal_gains" key="id">
          <classes>
            <object class="EcalGain"/>
            <collection class="EcalGainCollection"/>
          </classes>
          <fields>
            <field name="ecal_channel_id"/>
            <field name="gain"/>
          </fields>
        </table>
      </tables>
      <converters>
        <converter class="EcalGainConverter"/>
      </converters>
    </conditions>

Parsing only checks structure. Class names are resolved later by the schema and
converter registries.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from pathlib import Path
from typing import List, Union

from pydantic import BaseModel, ConfigDict

from hps_conditions.core.resources import read_file_text, read_resource_text
from hps_conditions.errors import ConfigurationError

DEFAULT_CONFIG_RESOURCE = "conditions_database.xml"


class TableDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    key: str
    object_class: str
    collection_class: str
    fields: tuple[str, ...]


class ConditionsConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    tables: tuple[TableDescriptor, ...]
    converters: tuple[str, ...]


def _required_child(element: ET.Element, tag: str, where: str) -> ET.Element:
    child = element.find(tag)
    if child is None:
        raise ConfigurationError(f"Missing <{tag}> element in {where}.")
    return child


def _required_attr(element: ET.Element, attr: str, where: str) -> str:
    value = element.get(attr)
    if value is None or not value.strip():
        raise ConfigurationError(
            f"Missing '{attr}' attribute on <{element.tag}> in {where}."
        )
    return value.strip()


def _parse_table(element: ET.Element) -> TableDescriptor:
    name = _required_attr(element, "name", "tables")
    where = f"table '{name}'"
    key = _required_attr(element, "key", where)
    classes = _required_child(element, "classes", where)
    object_class = _required_attr(_required_child(classes, "object", where), "class", where)
    collection_class = _required_attr(
        _required_child(classes, "collection", where), "class", where
    )
    fields_element = _required_child(element, "fields", where)
    fields: List[str] = [
        _required_attr(field, "name", where) for field in fields_element.findall("field")
    ]
    return TableDescriptor(
        name=name,
        key=key,
        object_class=object_class,
        collection_class=collection_class,
        fields=tuple(fields),
    )


def parse_config(text: Union[str, bytes]) -> ConditionsConfig:
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        raise ConfigurationError(f"Malformed conditions configuration: {e}") from e

    tables = _required_child(root, "tables", "configuration")
    converters = _required_child(root, "converters", "configuration")
    return ConditionsConfig(
        tables=tuple(_parse_table(t) for t in tables.findall("table")),
        converters=tuple(
            _required_attr(c, "class", "converters") for c in converters.findall("converter")
        ),
    )


def load_config(path: Union[str, Path]) -> ConditionsConfig:
    return parse_config(read_file_text(path, what="configuration file"))


def load_config_resource(name: str = DEFAULT_CONFIG_RESOURCE) -> ConditionsConfig:
    return parse_config(read_resource_text(name))
