"""Constants for buildchanges."""

# HTTP timeouts (seconds)
TEAMCITY_TIMEOUT = 30
JIRA_TIMEOUT = 15

CONFIG_DIR = ".buildchanges"
CONFIG_FILE = "config.toml"

# Hidden artifact written by the TeamCity NuGet plugin
NUGET_DEPENDENCIES_ARTIFACT = ".teamcity/nuget/nuget.xml"

# Upper bound on builds fetched per build type
MAX_BUILDS_PER_BUILD_TYPE = 10000
