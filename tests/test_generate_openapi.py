import json
import os

from src.tasks_api import generate_openapi as gen


def test_generate_openapi_writes_schema(tmp_path):
    out = tmp_path / "nested" / "openapi.json"
    written = gen.generate_openapi(str(out))

    assert written == str(out)
    schema = json.loads(out.read_text(encoding="utf-8"))
    assert schema["info"]["title"] == "Todo Service"
    assert {t["name"] for t in schema["tags"]} >= {"health", "auth", "todos", "welcome"}
    for path in [
        "/health",
        "/api/signup",
        "/api/authenticate",
        "/api/basicauth",
        "/api/users/{username}/todos",
        "/api/users/{username}/todos/{todo_id}",
    ]:
        assert path in schema["paths"]


def test_default_output_path_is_under_interfaces():
    path = gen.default_output_path()
    assert path.endswith(os.path.join("interfaces", "openapi.json"))
