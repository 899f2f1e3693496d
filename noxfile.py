import contextlib
import os
import shutil
from functools import wraps

import nox
from nox import session as nox_session
from nox.project import load_toml
from nox.sessions import Session

TYPE_CHECKING = False
if TYPE_CHECKING:
    from typing import Any, Callable, Dict, Optional, Sequence


# Fundamental Variables
ROOT_DIR: str = os.path.dirname(os.path.abspath(__file__))
MANIFEST_FILENAME = "pyproject.toml"
PROJECT_MANIFEST = load_toml(MANIFEST_FILENAME)
PROJECT_NAME: str = PROJECT_MANIFEST["project"]["name"]
PROJECT_NAME_NORMALIZED: str = PROJECT_NAME.replace("-", "_").replace(" ", "_")

PROJECT_CODES_DIR: str = os.path.join("src", PROJECT_NAME_NORMALIZED)
DIST_DIR: str = os.path.join(ROOT_DIR, "dist")
BUILD_DIR: str = os.path.join(ROOT_DIR, "build")
TEST_DIR: str = os.path.join(ROOT_DIR, "tests")
EXAMPLES_DIR: str = os.path.join(ROOT_DIR, "examples")


# Statics
DEFAULT_SESSION_KWARGS = {
    "reuse_venv": True,
    "venv_backend": "uv",
}


def uv_install_group_dependencies(session: Session, dependency_group: str):
    pyproject = nox.project.load_toml(MANIFEST_FILENAME)
    dependencies = nox.project.dependency_groups(pyproject, dependency_group)
    session.install(*dependencies)
    session.log(f"Installed dependencies: {dependencies} for {dependency_group}")


class AlteredSession(Session):
    """A session that installs a dependency group and applies default posargs on ``run``."""

    __slots__ = (
        "session",
        "dependency_group",
        "environment_mapping",
        "default_posargs",
    )

    def __init__(
        self,
        session: Session,
        dependency_group: str,
        environment_mapping: "Dict[str, str]",
        default_posargs: "Sequence[str]",
    ):
        super().__init__(session._runner)
        self.dependency_group = dependency_group
        self.environment_mapping = environment_mapping
        self.default_posargs = default_posargs
        self.session = session

    def run(self, *args, **kwargs):
        if self.dependency_group is not None:
            uv_install_group_dependencies(self, self.dependency_group)
        if self.session.posargs is not None:
            args = (*args, *(self.session.posargs or self.default_posargs))
        env: "Dict[str, str]" = kwargs.pop("env", {})
        env.update(self.environment_mapping)
        kwargs["env"] = env
        return self.session.run(*args, **kwargs)


def session(
    f: "Optional[Callable[..., Any]]" = None,
    /,
    dependency_group: "Optional[str]" = None,
    environment_mapping: "Dict[str, str]" = {},
    default_posargs: "Sequence[str]" = (),
    **kwargs,
) -> "Callable[..., Any]":
    if f is None:
        return lambda f: session(
            f,
            dependency_group=dependency_group,
            environment_mapping=environment_mapping,
            default_posargs=default_posargs,
            **kwargs,
        )
    nox_session_kwargs = {
        **DEFAULT_SESSION_KWARGS,
        "name": f.__name__.replace("_", "-"),
        **kwargs,
    }

    @wraps(f)
    def wrapper(session: Session, *args, **kwargs):
        altered_session = AlteredSession(
            session, dependency_group, environment_mapping, default_posargs
        )
        return f(altered_session, *args, **kwargs)

    return nox_session(wrapper, **nox_session_kwargs)


@contextlib.contextmanager
def alter_session(
    session: AlteredSession,
    dependency_group: str = None,
    environment_mapping: "Dict[str, str]" = {},
    default_posargs: "Sequence[str]" = (),
):
    old = (session.dependency_group, session.environment_mapping, session.default_posargs)
    session.dependency_group = dependency_group
    session.environment_mapping = environment_mapping
    session.default_posargs = default_posargs
    try:
        yield session
    finally:
        (
            session.dependency_group,
            session.environment_mapping,
            session.default_posargs,
        ) = old


# `nox -s test` runs the whole suite, `nox -s test -- tests/test_state.py -vv` a single file
@session(dependency_group="test", default_posargs=[TEST_DIR, "-s", "-vv"])
def test(session: AlteredSession):
    session.run(shutil.which("uv"), "run", "python", "-m", "pytest")


@session(dependency_group="dev")
def clean(session: Session):
    session.run("rm", "-rf", BUILD_DIR, DIST_DIR, "*.egg-info", external=True)


@session(dependency_group="dev")
def format(session: Session):
    session.run("uv", "tool", "run", "ruff", "format")


@session(dependency_group="dev", default_posargs=["check", ".", "--fix"])
def check(session: Session):
    session.run("uv", "tool", "run", "ruff")


@session(dependency_group="dev", default_posargs=[PROJECT_CODES_DIR])
def type_check(session: Session):
    session.run("uv", "tool", "run", "mypy")


@session(dependency_group="dev")
def build(session: Session):
    session.run("uv", "build")


# Examples carry their own tests, e.g. `python -m pytest examples/bluejeans_login_one.py`
@session(dependency_group="test", default_posargs=[os.path.join(EXAMPLES_DIR, "bluejeans_login_one.py"), "-q"])
def run_examples(session: Session):
    session.run(shutil.which("uv"), "run", "python", "-m", "pytest")


@session(dependency_group="test", default_posargs=[TEST_DIR, "-q"])
def ci(session: AlteredSession):
    session.run(shutil.which("uv"), "run", "python", "-m", "pytest")
    with alter_session(session, dependency_group="dev", default_posargs=["check", "."]):
        session.run("uv", "tool", "run", "ruff")
