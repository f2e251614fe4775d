# hermit

Building blocks for isolated, self-contained tool environments. An
environment is a directory with a `bin/` folder holding the activation
scripts, links to installed packages and a `bin/hermit.hcl` configuration
file. This package provides the pieces for working with such environments:
reversible environment-variable operations, the HCL subset used by the
configuration file, per-package metadata storage, the user's standard
directories, and checks of the environment's bootstrap scripts.

The package has no runtime dependencies beyond the standard library.

## Installation

```
pip install .
```

For running the test suite:

```
pip install ".[test]"
pytest
```

## Modules

- `hermit.envars`: reversible operations on environment variables
  (`Append`, `Prepend`, `Prefix`, `Set`, `Unset`, `Force`, all subclasses
  of `Op`), the `Transform` that records their effect, `parse` and
  `to_system` for `KEY=VALUE` lines, `infer` to guess operations from such
  lines, `marshal_ops`/`unmarshal_ops` for JSON encoding, and
  `expand`/`expand_no_escape`/`mapping` for `$VAR` and `${VAR}` expansion.
- `hermit.hclconfig`: `loads` and `dumps` for the subset of HCL used by
  configuration files; blocks are represented by `Block`, errors raise
  `HCLError`.
- `hermit.dao`: per-package metadata (ETag and time of the last update
  check) stored as files under `<state_dir>/metadata` (`DAO`,
  `PackageInfo`).
- `hermit.system`: `user_home_dir`, `user_cache_dir` and `user_state_dir`
  (`$HERMIT_STATE_DIR`, or `hermit` inside the cache directory).
- `hermit.scripts`: `verify_scripts` checks the environment's bin scripts
  against known SHA-256 sums; `tidy_sha256_db` reads a list of sums;
  `env_dir_from_proxy_link` and `find_env_dir` locate an environment from a
  proxy symlink or `$HERMIT_ENV`; `is_env_a_git_repo` checks for `.git`.

## Environment variable operations

Operations are applied to a snapshot of the environment and can be
reverted exactly:

```python
from hermit import envars

env = envars.parse(["PATH=/bin"])
ops = envars.infer(["PATH=/usr/local/bin:${PATH}", "GOPATH=/home/user/go"])

applied = envars.apply(env, "", ops).combined()
# {'PATH': '/usr/local/bin:/bin', 'GOPATH': '/home/user/go'}

restored = envars.revert(applied, "", ops).combined()
# {'PATH': '/bin'}

print(envars.to_system(applied))
# ['GOPATH=/home/user/go', 'PATH=/usr/local/bin:/bin']
```

When a `Set` or `Unset` replaces an existing value, the old value is kept
in a `_HERMIT_OLD_<NAME>_<HASH>` variable so that reverting restores it.
`Transform.changed()` leaves those bookkeeping variables out;
`Transform.changed(undo=True)` keeps them.

Operation lists round-trip through JSON with `envars.marshal_ops` and
`envars.unmarshal_ops`.

Expansion of the variables Hermit knows about:

```python
from hermit import envars

lookup = envars.mapping("/project", "/home/user", "linux", "amd64")
envars.expand("${HERMIT_BIN}/tool-$os-$arch", lookup)
# '/project/bin/tool-linux-amd64'
```

`$$` is left alone while expanding and turned into a single `$` at the end.

## Configuration files

```python
from hermit import hclconfig

data = hclconfig.loads('manage-git = false\ngithub-token-auth {\n  match = ["example/*"]\n}\n')
data["manage-git"]                      # False
data["github-token-auth"]["match"]      # ['example/*']

hclconfig.dumps({"manage-git": True, "sources": ["env:///packages"]})
# 'manage-git = true\nsources = ["env:///packages"]\n'
```

## Package metadata

```python
from hermit.dao import DAO, PackageInfo

dao = DAO("/path/to/state")
dao.update_package("test@stable", PackageInfo(etag="abc"))
info = dao.get_package("test@stable")   # PackageInfo(etag='abc', update_checked_at=...)
dao.delete_package("test@stable")
```

`get_package` returns `None` for a package with no record.

## Verifying an environment

```python
from hermit import scripts

sums = scripts.tidy_sha256_db(open("script.sha256").read())
scripts.verify_scripts("project/bin", "project", sums)
```

A missing `activate-hermit` or `hermit` raises `MissingScriptError`
(its `exit_code` is 82); a script whose checksum is not known raises
`ScriptVerificationError`. `activate-hermit.fish` may be absent.

## What this package does not do

There is no command-line program, and nothing here downloads, unpacks,
installs or links packages, resolves package manifests, or talks to a
package host over the network. Configuration files are read and written
as plain dictionaries through `hermit.hclconfig`; there is no typed
configuration object or environment object tying the pieces together.