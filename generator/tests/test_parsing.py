import pytest

from generator.src.errors import MalformedOutputError
from generator.src.services.artifacts import FileSink, slugify
from generator.src.services.parsing import (
    extract_project_name,
    has_balanced_delimiters,
    parse_architecture,
    parse_code_files,
)
from generator.tests.fakes import ARCHITECTURE_YAML, CODE_OUTPUT

def test_parse_architecture():
    architecture = parse_architecture(ARCHITECTURE_YAML)

    assert architecture.project_name == "TaskBoard"
    assert architecture.domain == "saas_productivity"
    assert [p["path"] for p in architecture.pages] == ["/", "/dashboard"]
    assert architecture.raw["metadata"]["name"] == "TaskBoard"

def test_parse_architecture_without_fence():
    architecture = parse_architecture("metadata:\n  name: Notes\n")

    assert architecture.project_name == "Notes"
    assert architecture.domain == "general"
    assert architecture.pages == []

@pytest.mark.parametrize("text", [
    "```yaml\n- just\n- a list\n```",
    "metadata:\n  domain: blog\n",
    "metadata: [unclosed",
])
def test_parse_architecture_rejects_malformed(text):
    with pytest.raises(MalformedOutputError):
        parse_architecture(text)

def test_parse_code_files():
    files = parse_code_files(CODE_OUTPUT)

    assert set(files) == {"app/page.tsx", "package.json"}
    assert files["app/page.tsx"].startswith("export default function HomePage")
    assert files["app/page.tsx"].endswith("}\n")
    assert '"task-board"' in files["package.json"]

def test_parse_code_files_path_markers():
    text = (
        "```css\n/* styles/globals.css */\nbody { margin: 0; }\n```\n"
        "```html\n<!-- public/index.html -->\n<p>hi</p>\n```\n"
        "```python\n# scripts/seed.py\nprint('seed')\n```\n"
        "```ts\n// ./lib/db.ts\nexport const db = {};\n```\n"
    )

    files = parse_code_files(text)

    assert set(files) == {"styles/globals.css", "public/index.html", "scripts/seed.py", "lib/db.ts"}

def test_parse_code_files_skips_unnamed_blocks():
    text = "```bash\nnpm install\n```\n```ts\n// lib/a.ts\nexport {};\n```"

    assert list(parse_code_files(text)) == ["lib/a.ts"]

def test_parse_code_files_without_files_is_malformed():
    with pytest.raises(MalformedOutputError, match="No files found"):
        parse_code_files("I could not generate anything.")

def test_extract_project_name():
    assert extract_project_name("build a task board for teams") == "BuildATask"
    assert extract_project_name("!!! ???") == "GeneratedApp"

def test_has_balanced_delimiters():
    assert has_balanced_delimiters("function f() { return (1); }")
    assert not has_balanced_delimiters("function f() { return (1);")

def test_slugify():
    assert slugify("Kanban Pro!") == "kanban-pro"
    assert slugify("***") == "generated-app"

def test_file_sink_writes_nested_files(tmp_path):
    sink = FileSink(str(tmp_path))
    app_path = sink.create_app_folder("Task Board")

    count = sink.write_files(app_path, {"app/page.tsx": "x\n", "package.json": "{}\n"})

    assert count == 2
    assert app_path.name.startswith("task-board-")
    assert (app_path / "app" / "page.tsx").read_text() == "x\n"

def test_file_sink_refuses_path_traversal(tmp_path):
    sink = FileSink(str(tmp_path))
    app_path = sink.create_app_folder("app")

    with pytest.raises(ValueError, match="outside"):
        sink.write_file(app_path, "../escape.txt", "nope")
