import pytest

from hermit import envars
from hermit.envars import (
    Append,
    Force,
    Prefix,
    Prepend,
    Set,
    Transform,
    Unset,
)


@pytest.mark.parametrize(
    "env, op, expected",
    [
        ({"PATH": "/bin"}, Append("PATH", "/usr/bin"), {"PATH": "/bin:/usr/bin"}),
        ({"PATH": "/bin"}, Prepend("PATH", "/usr/bin"), {"PATH": "/usr/bin:/bin"}),
        (
            {"PATH": "/bin"},
            Set("GOPATH", "/home/user/go/bin"),
            {"PATH": "/bin", "GOPATH": "/home/user/go/bin"},
        ),
        (
            {"GOPATH": "/go/bin"},
            Set("GOPATH", "/home/user/go/bin"),
            {
                "_HERMIT_OLD_GOPATH_370576067A214FFF": "/go/bin",
                "GOPATH": "/home/user/go/bin",
            },
        ),
        ({"PATH": "/bin"}, Unset("GOPATH"), {"PATH": "/bin"}),
        (
            {"GOPATH": "/go/bin"},
            Unset("GOPATH"),
            {"_HERMIT_OLD_GOPATH_A3751075A9D52FD8": "/go/bin"},
        ),
        (
            {"GOBIN": "/go/bin", "PATH": "/bin"},
            Prepend("PATH", "${GOBIN}"),
            {"GOBIN": "/go/bin", "PATH": "/go/bin:/bin"},
        ),
    ],
    ids=[
        "Append",
        "Prepend",
        "SetNoOverwrite",
        "SetOverwrite",
        "UnsetNoOverwrite",
        "UnsetOverwrite",
        "PrependWithVariablePrefix",
    ],
)
def test_op_apply_revert(env, op, expected):
    tr = Transform("", env)
    op.apply(tr)
    actual = tr.combined()
    assert actual == expected
    tr = Transform("", actual)
    op.revert(tr)
    assert tr.combined() == env


def test_ops_apply_revert():
    original = {"PATH": "/bin", "GOPATH": "/go", "GOBIN": "/go/bin"}
    ops = [
        Set("NPM_CONFIG_PREFIX", "/node_modules"),
        Set("GOPATH", "/home/larry/go"),
        Prepend("PATH", "/usr/bin"),
        Set("GOPATH", "/home/moe/go"),
        Unset("GOPATH"),
        Prepend("PATH", "${NPM_CONFIG_PREFIX}/bin"),
        Prepend("PATH", "/usr/local/bin"),
        Set("HERMIT_BIN", "${GOBIN}/bin"),
    ]
    expected = {
        "GOBIN": "/go/bin",
        "HERMIT_BIN": "/go/bin/bin",
        "NPM_CONFIG_PREFIX": "/node_modules",
        "PATH": "/usr/local/bin:/node_modules/bin:/usr/bin:/bin",
        "_HERMIT_OLD_GOPATH_A3751075A9D52FD8": "/home/moe/go",
        "_HERMIT_OLD_GOPATH_D3B9A60664850146": "/go",
        "_HERMIT_OLD_GOPATH_1B15BBB670152CB3": "/home/larry/go",
    }
    actual = envars.apply(original, "", ops).combined()
    assert actual == expected
    assert envars.revert(actual, "", ops).combined() == original


def test_transform_combined_and_changed():
    tr = envars.apply(
        {"PATH": "/bin"},
        "",
        [Force("GOPATH", "/go/bin"), Force("PATH", "/usr/bin:${PATH}")],
    )
    assert tr.combined() == {"PATH": "/usr/bin:/bin", "GOPATH": "/go/bin"}
    assert tr.changed(False) == {"GOPATH": "/go/bin", "PATH": "/usr/bin:/bin"}


def test_transform_changed_undo_keeps_revert_state():
    tr = envars.apply({"GOPATH": "/go"}, "", [Unset("GOPATH")])
    assert tr.changed(False) == {}
    assert tr.changed(True) == {
        "_HERMIT_OLD_GOPATH_A3751075A9D52FD8": "/go",
        "GOPATH": "",
    }


def test_transform_to_in_place():
    tr = envars.apply({"A": "1", "B": "2"}, "", [Unset("A"), Set("C", "3")])
    env = {"A": "1", "B": "2"}
    tr.to(env)
    assert env == {
        "B": "2",
        "C": "3",
        "_HERMIT_OLD_A_A7D8F5B1A0AAB3D4": "1",
    } or (env["B"] == "2" and env["C"] == "3" and "A" not in env)
    assert "A" not in env


def test_issue47():
    original = {"PATH": "/bin", "HERMIT_ENV": "/home/user/project"}
    pkg = {
        "NPM_CONFIG_PREFIX": "${HERMIT_ENV}/.hermit/node",
        "PATH": "${HERMIT_ENV}/node_modules/.bin:${NPM_CONFIG_PREFIX}/bin:${PATH}",
    }
    ops = envars.infer(envars.to_system(pkg))
    actual = envars.apply(original, "/home/user/project", ops).combined()
    expected = {
        "HERMIT_ENV": "/home/user/project",
        "NPM_CONFIG_PREFIX": "/home/user/project/.hermit/node",
        "PATH": "/home/user/project/node_modules/.bin:/home/user/project/.hermit/node/bin:/bin",
    }
    assert actual == expected
    reverted = envars.revert(expected, "/home/user/project", ops).combined()
    assert reverted == original


def test_encode_decode_ops():
    ops = [
        Append("APPEND", "${APPEND}:text"),
        Prepend("PREPEND", "text:${PREPEND}"),
        Set("SET", "text"),
        Unset("UNSET"),
        Force("FORCE", "text"),
        Prefix("PREFIX", "prefix_"),
    ]
    data = envars.marshal_ops(ops)
    assert envars.unmarshal_ops(data) == ops


def test_marshal_format():
    assert envars.marshal_ops([Set("A", "b"), Unset("C"), Prefix("D", "x")]) == (
        '[{"s":{"n":"A","v":"b"}},{"u":{"n":"C"}},{"P":{"n":"D","p":"x"}}]'
    )


def test_unmarshal_unknown_key():
    with pytest.raises(ValueError, match="unsupported envar op key"):
        envars.unmarshal_ops('[{"z":{"n":"A"}}]')


def test_unmarshal_invalid_json():
    with pytest.raises(ValueError):
        envars.unmarshal_ops("not json")


@pytest.mark.parametrize(
    "ops_in, env_in, expected",
    [
        (
            [
                "NODE_PATH=${HERMIT_STATE_DIR}/pkg/node",
                "PATH=${HERMIT_ENV}/bin:${PATH}",
                "PATH=${NODE_PATH}/bin:${PATH}",
            ],
            [
                "PATH=/usr/local/bin:/usr/bin",
                "HERMIT_STATE_DIR=/tmp/cache/hermit",
                "HERMIT_ENV=/tmp/env",
            ],
            [
                "HERMIT_ENV=/tmp/env",
                "HERMIT_STATE_DIR=/tmp/cache/hermit",
                "NODE_PATH=/tmp/cache/hermit/pkg/node",
                "PATH=/tmp/cache/hermit/pkg/node/bin:/tmp/env/bin:/usr/local/bin:/usr/bin",
            ],
        ),
        (["A=${B}", "B=${A}"], [], []),
    ],
)
def test_expand_envars(ops_in, env_in, expected):
    ops = envars.infer(ops_in)
    actual = envars.to_system(envars.apply(envars.parse(env_in), "", ops).combined())
    assert actual == expected


def test_infer_kinds():
    ops = envars.infer(
        ["PATH=$PATH:/x", "MANPATH=/m:${MANPATH}", "GONE=", "HOME=/h"]
    )
    assert ops == [
        Append("PATH", "/x"),
        Prepend("MANPATH", "/m"),
        Unset("GONE"),
        Set("HOME", "/h"),
    ]


def test_parse_and_to_system():
    env = envars.parse(["B=2=3", "A=1"])
    assert env == {"A": "1", "B": "2=3"}
    assert envars.to_system(env) == ["A=1", "B=2=3"]


def test_parse_rejects_missing_equals():
    with pytest.raises(ValueError):
        envars.parse(["NOEQUALS"])


@pytest.mark.parametrize(
    "op, text",
    [
        (Append("PATH", "/usr/bin"), 'PATH="${PATH}:/usr/bin"'),
        (Prepend("PATH", "/usr/bin"), "PATH=/usr/bin:${PATH}"),
        (Set("A", "hello world"), "A=\"'hello world'\""),
        (Force("A", ""), "A=\"''\""),
        (Unset("X"), "unset X"),
        (Prefix("P", "pre_"), "P=pre_${P}"),
        (Set("A", "$X"), 'A="\\$X"'),
    ],
)
def test_op_str(op, text):
    assert str(op) == text


def test_prefix_apply_and_revert():
    tr = envars.apply({"P": "value"}, "", [Prefix("P", "pre_")])
    assert tr.combined() == {"P": "pre_value"}
    back = envars.revert({"P": "pre_value"}, "", [Prefix("P", "pre_")])
    assert back.combined() == {"P": "value"}


def test_set_revert_keeps_user_change():
    applied = envars.apply({"A": "old"}, "", [Set("A", "new")]).combined()
    applied["A"] = "user"
    assert envars.revert(applied, "", [Set("A", "new")]).combined() == {"A": "user"}


def test_envar_property():
    assert Prepend("PATH", "/x").envar == "PATH"


_BASIC = envars.mapping("hermit/env", "home/user", "linux", "amd64", "x86_64")
_NESTED = envars.mapping("${HOME}/env", "home/${os}-user", "darwin", "arm64", "aarch64")
_UNKNOWN = envars.mapping("", "", "foo", "bar")


def _escaped(s):
    return {"$": "$$", "foo": "bar"}.get(s, "")


@pytest.mark.parametrize(
    "func, text, expected",
    [
        (_BASIC, "${HOME}", "home/user"),
        (_BASIC, "${HERMIT_ENV}", "hermit/env"),
        (_BASIC, "${env}", "hermit/env"),
        (_BASIC, "${HERMIT_BIN}", "hermit/env/bin"),
        (_BASIC, "${os}", "linux"),
        (_BASIC, "${arch}", "amd64"),
        (_BASIC, "${xarch}", "x86_64"),
        (_BASIC, "${NOT_A_VAR}", ""),
        (_NESTED, "You live at $HOME!", "You live at home/darwin-user!"),
        (_NESTED, "${HERMIT_ENV}", "home/darwin-user/env"),
        (_NESTED, "${env}", "home/darwin-user/env"),
        (_NESTED, "${HERMIT_BIN}", "home/darwin-user/env/bin"),
        (
            _NESTED,
            "$HERMIT_BIN/foo-$arch/$env",
            "home/darwin-user/env/bin/foo-arm64/home/darwin-user/env",
        ),
        (_NESTED, "$xarch", "aarch64"),
        (_UNKNOWN, "${os}-${arch}-${xarch}", "foo-bar-bar"),
        (_escaped, "$foo ${foo}", "bar bar"),
        (_escaped, "$$foo $${foo} ${$}{foo}", "$foo ${foo} ${foo}"),
        (_escaped, "$$$foo", "$bar"),
    ],
)
def test_expand_mapping(func, text, expected):
    assert envars.expand(text, func) == expected


def test_expand_no_escape():
    assert envars.expand_no_escape("$$foo", _escaped) == "$$foo"


@pytest.mark.parametrize("pattern", ["$DD", "$MM", "$YYYY"])
def test_expand_date_time(pattern):
    func = envars.mapping("foo", "foo", "", "")
    value = envars.expand(pattern, func)
    assert int(value) > 0


def test_expand_year_is_four_digits():
    func = envars.mapping("foo", "foo", "", "")
    assert len(envars.expand("$YYYY", func)) == 4
    assert len(envars.expand("$MM", func)) == 2


def test_expand_leaves_trailing_dollar_and_bad_syntax():
    func = envars.mapping("e", "h", "linux", "amd64")
    assert envars.expand("cost$", func) == "cost$"
    assert envars.expand("a${}b", func) == "ab"