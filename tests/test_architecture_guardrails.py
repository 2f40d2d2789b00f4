from pathlib import Path


def test_engine_does_not_depend_on_external_graph_runtimes():
    """The scheduler, state store and graph builder are in-house."""
    forbidden_tokens = [
        "import langgraph",
        "from langgraph",
        "time.sleep(",
    ]
    for path in Path("src/swarmgraph").rglob("*.py"):
        text = path.read_text(encoding="utf-8")
        for token in forbidden_tokens:
            assert token not in text, f"Found forbidden token '{token}' in {path}"


def test_nodes_do_not_resolve_backends_themselves():
    for path in Path("src/swarmgraph/workflows").rglob("*.py"):
        text = path.read_text(encoding="utf-8")
        assert "resolve_backend" not in text, f"{path} resolves its own backend"
        assert "Backend.from_env" not in text, f"{path} reads backend config directly"


def test_no_machine_specific_paths_in_source_and_docs():
    forbidden_tokens = [
        "/Volumes/",
        "/home/",
        "C:\\Users",
    ]
    targets = [
        Path("src/swarmgraph"),
        Path("DESIGN.md"),
        Path("README.md"),
    ]
    files: list[Path] = []
    for target in targets:
        if target.is_dir():
            files.extend(path for path in target.rglob("*") if path.suffix in {".py", ".md"})
        elif target.exists():
            files.append(target)
    for path in files:
        text = path.read_text(encoding="utf-8")
        for token in forbidden_tokens:
            assert token not in text, f"Found machine-specific token '{token}' in {path}"
