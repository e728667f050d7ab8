import json
import random

import pytest

from core.errors import BuiltinUsageError
from core.files import FileTree, LOG_DIR, MANIFEST
from core.types import DIR, FILE


def test_seeded_tree_has_logs_and_manifest():
    tree = FileTree.seeded("alice")
    entries = [(n.name, n.kind) for n in tree.ls()]

    assert entries == [(LOG_DIR, DIR), (MANIFEST, FILE)]
    assert tree.root.name == "/"
    assert json.loads(tree.cat(MANIFEST))["node"] == "alice"


def _apply_to_model(model, op, name):
    names = [n for n, _ in model]
    if op == "mkdir":
        if name not in names:
            model.append((name, DIR))
    elif op == "touch":
        if name not in names:
            model.append((name, FILE))
    elif op == "rm":
        if name in names:
            del model[names.index(name)]


@pytest.mark.parametrize("seed", range(8))
def test_mkdir_touch_rm_match_plain_model(seed):
    rng = random.Random(seed)
    tree = FileTree()
    model = []

    for _ in range(60):
        op = rng.choice(["mkdir", "touch", "rm"])
        name = rng.choice(["a", "b", "c", "d", "e"])
        _apply_to_model(model, op, name)
        try:
            getattr(tree, op)(name)
        except (FileExistsError, FileNotFoundError):
            pass

        assert [(n.name, n.kind) for n in tree.ls()] == model


def test_touched_file_is_empty():
    tree = FileTree()
    tree.touch("f")
    assert tree.cat("f") == ""


def test_write_then_cat_returns_exact_content():
    tree = FileTree()
    tree.write("f", "X")
    assert tree.cat("f") == "X"

    tree.touch("g")
    tree.write("g", "X")
    assert tree.cat("g") == "X"
    assert [n.name for n in tree.ls()] == ["f", "g"]


def test_touch_existing_file_keeps_content():
    tree = FileTree()
    tree.write("f", "keep")
    tree.touch("f")
    assert tree.cat("f") == "keep"
    assert len(tree.ls()) == 1


def test_mkdir_refuses_existing_name():
    tree = FileTree()
    tree.mkdir("docs")
    with pytest.raises(FileExistsError):
        tree.mkdir("docs")


def test_rm_removes_first_match_and_reports_missing():
    tree = FileTree()
    tree.mkdir("a")
    tree.touch("b")
    assert tree.rm("a").is_dir
    assert [n.name for n in tree.ls()] == ["b"]
    with pytest.raises(FileNotFoundError):
        tree.rm("a")


def test_cat_errors():
    tree = FileTree.seeded("alice")
    with pytest.raises(IsADirectoryError):
        tree.cat(LOG_DIR)
    with pytest.raises(FileNotFoundError):
        tree.cat("missing")


def test_write_to_directory_is_refused():
    tree = FileTree.seeded("alice")
    with pytest.raises(IsADirectoryError):
        tree.write(LOG_DIR, "x")


@pytest.mark.parametrize("name", ["", None, ".", "..", "a/b"])
def test_bad_names_are_usage_errors(name):
    tree = FileTree()
    with pytest.raises(BuiltinUsageError):
        tree.mkdir(name)


def test_summary_marks_directories():
    tree = FileTree.seeded("alice")
    assert tree.summary() == "logs/, manifest.json"
    assert FileTree().summary() == "(empty)"


def test_wire_form_keeps_order_and_kinds():
    tree = FileTree.seeded("alice")
    tree.write("notes.txt", "hi")
    copy = FileTree.from_dict(json.loads(json.dumps(tree.to_dict())))

    assert [(n.name, n.kind) for n in copy.ls()] == [(n.name, n.kind) for n in tree.ls()]
    assert copy.cat("notes.txt") == "hi"
    assert copy.get(LOG_DIR).children == []
