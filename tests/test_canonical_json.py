import json

from schemacompat._internal.canonical_json import canonical_dumps
from schemacompat.kernel.schema import parse_package_spec


def test_canonical_dumps_sorts_keys_and_keeps_unicode():
    payload = {"b": 2, "a": {"z": 1, "y": "🔴"}, "list": [3, 2, 1]}

    assert canonical_dumps(payload) == '{"a":{"y":"🔴","z":1},"b":2,"list":[3,2,1]}'


def test_schema_to_json_is_stable_across_key_order(tmp_path):
    first = {
        "name": "pkg",
        "resources": {"pkg:index:B": {}, "pkg:index:A": {"inputProperties": {"x": {"type": "string"}}}},
    }
    second = json.loads(json.dumps(first, sort_keys=True))

    assert parse_package_spec(first).to_json() == parse_package_spec(second).to_json()


def test_schema_to_json_uses_wire_aliases():
    spec = parse_package_spec({
        "name": "pkg",
        "resources": {
            "pkg:index:A": {
                "inputProperties": {"cfg": {"$ref": "#/types/pkg:index:Config"}},
                "requiredInputs": ["cfg"],
            }
        },
    })

    decoded = json.loads(spec.to_json())
    resource = decoded["resources"]["pkg:index:A"]
    assert resource["inputProperties"]["cfg"]["$ref"] == "#/types/pkg:index:Config"
    assert resource["requiredInputs"] == ["cfg"]
