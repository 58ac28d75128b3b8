"""Tool catalogue of all Azure DevOps domains.

``ALL_GROUPS`` fixes the order in which tools are advertised to clients.
"""

from tl.ado_mcp.tools import (
    artifacts,
    attachments,
    boards,
    builds,
    dashboards,
    git,
    links,
    notifications,
    pipelines,
    policies,
    projects,
    pull_requests,
    releases,
    service_connections,
    test_plans,
    users,
    variable_groups,
    wiki,
    work_items,
)


ALL_GROUPS = (
    work_items.group,
    links.group,
    attachments.group,
    boards.group,
    projects.group,
    git.group,
    pull_requests.group,
    pipelines.group,
    builds.group,
    releases.group,
    wiki.group,
    test_plans.group,
    artifacts.group,
    service_connections.group,
    variable_groups.group,
    users.group,
    notifications.group,
    dashboards.group,
    policies.group,
)
