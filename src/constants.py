"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    PARSE_ERROR = 3
    NOT_FOUND = 4
    UNRESOLVABLE_VERSION = 5
    CYCLE = 6
    CANCELLED = 7


class Scopes(Enum):
    """Dependency scopes understood by the resolver.

    Args:
        Enum (string): Scope names as written in manifests.
    """

    COMPILE = "compile"
    PROVIDED = "provided"
    RUNTIME = "runtime"
    TEST = "test"
    SYSTEM = "system"
    IMPORT = "import"


class OutputFormats(Enum):
    """Output formats supported by the CLI."""

    JSON = "json"
    CSV = "csv"
    TEXT = "text"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    POM_SUFFIX = ".pom"
    YAML_SUFFIXES = (".yaml", ".yml", ".json")
    WILDCARD = "*"
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_FORMAT_DEBUG = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

    # Resolver defaults
    MAX_WORKERS = 8
    EXCLUSION_SCOPES = ["global", "path"]
    DEFAULT_EXCLUSION_SCOPE = "global"
    BOM_CONFLICT_POLICIES = ["first", "last"]
    DEFAULT_BOM_CONFLICT_POLICY = "first"

    # Remote repository access
    REPOSITORY_URL_MAVEN_CENTRAL = "https://repo1.maven.org/maven2"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    HTTP_RETRY_MAX = 3
    HTTP_RETRY_BASE_DELAY_SEC = 0.3
