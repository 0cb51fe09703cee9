"""GitHub Projects (v2) provider over the GraphQL and REST APIs."""
from __future__ import annotations

import logging
import time
from typing import Callable, Dict, List, Optional, Tuple

import requests

from .decode import parse_fields, parse_item, parse_timelines
from .models import ASSIGNABLE_TYPES, Field, Item, Project
from .validate import validate_item_id, validate_project_id, validate_status_update_ids

log = logging.getLogger('gh_project_board')

API_URL = "https://api.github.com"
GRAPHQL_URL = API_URL + "/graphql"
PAGE_SIZE = 100
RETRY_STATUSES = (403, 429, 502, 503, 504)
MAX_BACKOFF = 300

# -----------------------------
# GraphQL documents
# -----------------------------
_FIELD_NAME = "field { ... on ProjectV2FieldCommon { name } }"

PROJECT_FIELDS = """
fields(first: 50) {
  nodes {
    ... on ProjectV2FieldCommon { id name }
    ... on ProjectV2SingleSelectField { id name options { id name } }
    ... on ProjectV2IterationField {
      id name
      configuration {
        iterations { id title startDate duration }
        completedIterations { id title startDate duration }
      }
    }
  }
}
"""

ITEM_BODY = """
id
createdAt
updatedAt
status: fieldValueByName(name: "Status") {
  ... on ProjectV2ItemFieldSingleSelectValue { name optionId }
}
priority: fieldValueByName(name: "Priority") {
  ... on ProjectV2ItemFieldSingleSelectValue { name optionId }
}
fieldValues(first: 30) {
  nodes {
    ... on ProjectV2ItemFieldSingleSelectValue { name optionId %(field)s }
    ... on ProjectV2ItemFieldTextValue { text %(field)s }
    ... on ProjectV2ItemFieldNumberValue { number %(field)s }
    ... on ProjectV2ItemFieldIterationValue { iterationId title startDate duration %(field)s }
    ... on ProjectV2ItemFieldLabelValue { labels(first: 20) { nodes { name } } %(field)s }
    ... on ProjectV2ItemFieldUserValue { users(first: 10) { nodes { login } } %(field)s }
    ... on ProjectV2ItemFieldMilestoneValue { milestone { title } %(field)s }
  }
}
content {
  __typename
  ... on DraftIssue {
    id title body createdAt updatedAt
    assignees(first: 10) { nodes { login } }
  }
  ... on Issue {
    id title body number url createdAt updatedAt
    repository { nameWithOwner }
    milestone { title }
    assignees(first: 10) { nodes { login } }
    labels(first: 20) { nodes { name } }
    parent { title number }
    subIssues { totalCount }
  }
  ... on PullRequest {
    id title body number url createdAt updatedAt
    repository { nameWithOwner }
    milestone { title }
    assignees(first: 10) { nodes { login } }
    labels(first: 20) { nodes { name } }
  }
}
""" % {"field": _FIELD_NAME}

PROJECT_BODY = """
id
title
%s
items(first: $first, after: $after) {
  pageInfo { hasNextPage endCursor }
  nodes { %s }
}
""" % (PROJECT_FIELDS, ITEM_BODY)

GQL_PROJECT_BY_NODE = """
query($id: ID!, $first: Int!, $after: String) {
  node(id: $id) { ... on ProjectV2 { %s } }
}
""" % PROJECT_BODY

GQL_ORG_PROJECT = """
query($login: String!, $number: Int!, $first: Int!, $after: String) {
  organization(login: $login) { projectV2(number: $number) { %s } }
}
""" % PROJECT_BODY

GQL_USER_PROJECT = """
query($login: String!, $number: Int!, $first: Int!, $after: String) {
  user(login: $login) { projectV2(number: $number) { %s } }
}
""" % PROJECT_BODY

GQL_ITEM = """
query($id: ID!) {
  node(id: $id) { ... on ProjectV2Item { %s } }
}
""" % ITEM_BODY

GQL_MUTATION_SET_FIELD = """
mutation($projectId: ID!, $itemId: ID!, $fieldId: ID!, $optionId: String!) {
  updateProjectV2ItemFieldValue(input: {
    projectId: $projectId, itemId: $itemId, fieldId: $fieldId,
    value: { singleSelectOptionId: $optionId }
  }) { projectV2Item { id } }
}
"""

GQL_MUTATION_DRAFT = """
mutation($id: ID!, $title: String!, $body: String!) {
  updateProjectV2DraftIssue(input: { draftIssueId: $id, title: $title, body: $body }) {
    draftIssue { id title body }
  }
}
"""

GQL_MUTATION_ISSUE = """
mutation($id: ID!, $title: String!, $body: String!) {
  updateIssue(input: { id: $id, title: $title, body: $body }) { issue { id title body } }
}
"""

GQL_MUTATION_PULL = """
mutation($id: ID!, $title: String!, $body: String!) {
  updatePullRequest(input: { pullRequestId: $id, title: $title, body: $body }) {
    pullRequest { id title body }
  }
}
"""

GQL_LIST_ORG_PROJECTS = """
query($login: String!) {
  organization(login: $login) { projectsV2(first: 50) { nodes { id number title closed url } } }
}
"""

GQL_LIST_USER_PROJECTS = """
query($login: String!) {
  user(login: $login) { projectsV2(first: 50) { nodes { id number title closed url } } }
}
"""


# -----------------------------
# Transport
# -----------------------------
def _session(token: str) -> requests.Session:
    s = requests.Session()
    s.headers["Authorization"] = f"Bearer {token}"
    s.headers["Accept"] = "application/vnd.github+json"
    return s


def _graphql_raw(session: requests.Session, query: str, variables: Dict[str, object]) -> Dict:
    try:
        r = session.post(GRAPHQL_URL, json={"query": query, "variables": variables}, timeout=60)
        r.raise_for_status()
        return r.json()
    except Exception:
        log.exception("GraphQL request failed")
        raise


def _retry_sleep(seconds: float, on_wait: Optional[Callable[[str], None]] = None) -> None:
    """Sit out a rate limit, reporting the wait through ``on_wait`` or the log."""
    msg = f"Rate limited; waiting {int(seconds)}s…"
    if on_wait:
        on_wait(msg)
    else:
        log.info(msg)
    time.sleep(max(0.0, seconds))


def _parse_retry_after_seconds(resp: Optional[requests.Response]) -> Optional[int]:
    """Seconds GitHub asks for: ``Retry-After`` (secondary limits), then ``X-RateLimit-Reset``."""
    if resp is None or resp.headers is None:
        return None
    retry_after = resp.headers.get('Retry-After')
    if retry_after:
        try:
            return int(float(retry_after))
        except ValueError:
            log.debug("ignoring Retry-After %r", retry_after)
    reset = resp.headers.get('X-RateLimit-Reset')
    if reset:
        try:
            return max(1, int(reset) - int(time.time()))
        except ValueError:
            log.debug("ignoring X-RateLimit-Reset %r", reset)
    return None


def _graphql_with_backoff(
    session: requests.Session,
    query: str,
    variables: Dict[str, object],
    on_wait: Optional[Callable[[str], None]] = None,
    max_total_wait: int = 900,
) -> Dict:
    """Post one GraphQL document for :class:`GitHubProvider`, retrying transient failures.

    Every project read and field mutation goes through here.  HTTP 403/429/5xx wait
    for the time GitHub asks for, else for an exponential backoff (10 s doubling up
    to 5 min); timeouts and connection errors back off up to 60 s; a ``RATE_LIMITED``
    error inside an HTTP 200 body backs off as well.  When the next wait would push
    the total past ``max_total_wait`` the HTTP error is re-raised, or the rate-limited
    body is returned so the caller reports its errors.
    """
    backoff = 10
    waited = 0

    def next_backoff(cap: int) -> int:
        nonlocal backoff
        wait_s = min(cap, backoff)
        backoff = min(MAX_BACKOFF, backoff * 2)
        return wait_s

    def wait_within_budget(wait_s: int) -> bool:
        nonlocal waited
        if waited + wait_s > max_total_wait:
            return False
        _retry_sleep(wait_s, on_wait)
        waited += wait_s
        return True

    while True:
        try:
            resp = _graphql_raw(session, query, variables)
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            if status not in RETRY_STATUSES:
                raise
            wait_s = _parse_retry_after_seconds(e.response)
            if not wait_within_budget(wait_s if wait_s is not None else next_backoff(MAX_BACKOFF)):
                raise
            continue
        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError):
            if not wait_within_budget(next_backoff(60)):
                raise
            continue

        errs = resp.get("errors") or []
        if any(e.get("type") == "RATE_LIMITED" for e in errs) and wait_within_budget(next_backoff(MAX_BACKOFF)):
            continue
        return resp


def _raise_errors(resp: Dict, operation: str) -> Dict:
    errs = resp.get("errors") or []
    if errs:
        raise RuntimeError(f"{operation} failed: " + "; ".join(e.get("message", str(e)) for e in errs))
    return resp.get("data") or {}


def _split_repo(full_name: str) -> Tuple[str, str]:
    owner, _, name = (full_name or "").partition("/")
    if not owner or not name:
        raise ValueError(f"invalid repository: {full_name!r}")
    return owner, name


# -----------------------------
# Provider
# -----------------------------
class GitHubProvider:
    def __init__(self, token: str, on_wait: Optional[Callable[[str], None]] = None) -> None:
        if not token:
            raise RuntimeError("GITHUB_TOKEN is required to talk to GitHub")
        self.session = _session(token)
        self.on_wait = on_wait

    def _graphql(self, query: str, variables: Dict[str, object], operation: str) -> Dict:
        resp = _graphql_with_backoff(self.session, query, variables, on_wait=self.on_wait)
        return _raise_errors(resp, operation)

    def _rest(self, method: str, path: str, operation: str, **kwargs) -> object:
        r = self.session.request(method, API_URL + path, timeout=30, **kwargs)
        if r.status_code >= 300:
            log.warning("%s HTTP %s: %s", operation, r.status_code, r.text[:200])
            raise RuntimeError(f"{operation} failed: HTTP {r.status_code}")
        if r.status_code == 204 or not r.content:
            return None
        return r.json()

    # fetch -------------------------------------------------------------
    def _fetch_pages(self, query: str, variables: Dict[str, object], path: Tuple[str, ...],
                     limit: int) -> Optional[Tuple[Dict, List[Dict]]]:
        nodes: List[Dict] = []
        project: Optional[Dict] = None
        after: Optional[str] = None
        while True:
            first = min(PAGE_SIZE, max(1, limit - len(nodes)))
            data = self._graphql(query, dict(variables, first=first, after=after), "Fetch project")
            node = data
            for key in path:
                node = (node or {}).get(key) or {}
            if not node:
                return None
            if project is None:
                project = node
            items = node.get("items") or {}
            nodes.extend(n for n in (items.get("nodes") or []) if isinstance(n, dict))
            page = items.get("pageInfo") or {}
            if len(nodes) >= limit or not page.get("hasNextPage"):
                break
            after = page.get("endCursor")
        return project, nodes[:limit]

    def fetch_project(self, project_id: str, owner: str, limit: int) -> Tuple[Project, List[Item]]:
        limit = limit if limit > 0 else PAGE_SIZE
        project_id = (project_id or "").strip()
        result = None
        if project_id.startswith("PVT_"):
            result = self._fetch_pages(GQL_PROJECT_BY_NODE, {"id": project_id}, ("node",), limit)
        elif project_id.isdigit():
            if not owner:
                raise RuntimeError("Fetch project failed: an owner is required with a project number")
            variables = {"login": owner, "number": int(project_id)}
            for root, query in (("organization", GQL_ORG_PROJECT), ("user", GQL_USER_PROJECT)):
                try:
                    result = self._fetch_pages(query, variables, (root, "projectV2"), limit)
                except RuntimeError as e:
                    log.info("project lookup under %s:%s failed: %s", root, owner, e)
                    result = None
                if result is not None:
                    break
        else:
            validate_project_id(project_id)
        if result is None:
            raise RuntimeError(f"Fetch project failed: project {project_id!r} not found")
        node, raw_items = result
        fields: List[Field] = parse_fields(node.get("fields"))
        project = Project(id=project_id, owner=owner, name=node.get("title") or "",
                          node_id=node.get("id") or "", fields=fields,
                          iterations=parse_timelines(node.get("fields")))
        items: List[Item] = []
        for raw in raw_items:
            item = parse_item(raw, position=len(items))
            if item is not None:
                items.append(item)
        log.info("fetched %d items from project %s", len(items), project_id)
        return project, items

    def fetch_item(self, item_id: str) -> Item:
        data = self._graphql(GQL_ITEM, {"id": item_id}, "Fetch item")
        item = parse_item(data.get("node"))
        if item is None or not item.id:
            raise RuntimeError(f"Fetch item failed: item {item_id!r} not found")
        return item

    def _linked_issue(self, item_id: str) -> Item:
        item = self.fetch_item(item_id)
        if not item.repository or not item.number:
            raise RuntimeError(f"item {item_id} is not linked to a repository issue")
        return item

    # field mutations ---------------------------------------------------
    def update_status(self, project_id: str, owner: str, item_id: str, field_id: str,
                      option_id: str) -> Item:
        return self._set_option(project_id, item_id, field_id, option_id, "Status update")

    def update_field(self, project_id: str, owner: str, item_id: str, field_id: str,
                     option_id: str, field_name: str) -> Item:
        return self._set_option(project_id, item_id, field_id, option_id, f"{field_name or 'Field'} update")

    def _set_option(self, project_id: str, item_id: str, field_id: str, option_id: str,
                    operation: str) -> Item:
        validate_status_update_ids(project_id, item_id, field_id, option_id)
        variables = {"projectId": project_id, "itemId": item_id, "fieldId": field_id, "optionId": option_id}
        self._graphql(GQL_MUTATION_SET_FIELD, variables, operation)
        log.info("%s: item %s -> option %s", operation, item_id, option_id)
        return self.fetch_item(item_id)

    # issue mutations ---------------------------------------------------
    def update_labels(self, project_id: str, owner: str, item_id: str, item_type: str,
                      repo: str, number: int, labels: List[str]) -> Item:
        validate_item_id(item_id)
        if not repo or not number:
            raise RuntimeError("Labels update failed: item is not linked to a repository issue")
        o, n = _split_repo(repo)
        self._rest("PATCH", f"/repos/{o}/{n}/issues/{number}", "Labels update", json={"labels": labels})
        return Item(id=item_id, labels=list(labels))

    def update_assignees(self, project_id: str, owner: str, item_id: str, item_type: str,
                         repo: str, number: int, logins: List[str]) -> Item:
        validate_item_id(item_id)
        if item_type not in ASSIGNABLE_TYPES:
            raise ValueError(f"cannot assign to item of type: {item_type}")
        if not repo or not number:
            raise RuntimeError("Assignee update failed: item is not linked to a repository issue")
        o, n = _split_repo(repo)
        self._rest("PATCH", f"/repos/{o}/{n}/issues/{number}", "Assignee update", json={"assignees": logins})
        return Item(id=item_id, assignees=list(logins))

    def update_milestone(self, project_id: str, owner: str, item_id: str, milestone: str) -> Item:
        validate_item_id(item_id)
        target = self._linked_issue(item_id)
        o, n = _split_repo(target.repository)
        title = (milestone or "").strip()
        number: Optional[int] = None
        if title:
            listed = self._rest("GET", f"/repos/{o}/{n}/milestones", "Milestone lookup",
                                params={"state": "all", "per_page": 100}) or []
            for m in listed:
                if isinstance(m, dict) and (m.get("title") or "").lower() == title.lower():
                    number = m.get("number")
                    title = m.get("title") or title
                    break
            if number is None:
                raise RuntimeError(f"Milestone update failed: milestone {title!r} not found in {target.repository}")
        self._rest("PATCH", f"/repos/{o}/{n}/issues/{target.number}", "Milestone update",
                   json={"milestone": number})
        target.milestone = title
        return target

    def update_item(self, project_id: str, owner: str, item: Item, title: str, description: str) -> Item:
        content_id = item.content_id or ""
        variables = {"id": content_id, "title": title, "body": description}
        if content_id.startswith("DI_"):
            self._graphql(GQL_MUTATION_DRAFT, variables, "Draft update")
        elif content_id.startswith("I_"):
            self._graphql(GQL_MUTATION_ISSUE, variables, "Issue update")
        elif content_id.startswith("PR_"):
            self._graphql(GQL_MUTATION_PULL, variables, "Pull request update")
        elif item.repository and item.number:
            o, n = _split_repo(item.repository)
            self._rest("PATCH", f"/repos/{o}/{n}/issues/{item.number}", "Issue update",
                       json={"title": title, "body": description})
        else:
            raise RuntimeError(f"Item update failed: no editable content for item {item.id}")
        log.info("updated title/body of item %s", item.id)
        return Item(id=item.id, title=title, description=description)

    # reads -------------------------------------------------------------
    def fetch_issue_detail(self, repository: str, number: int) -> str:
        o, n = _split_repo(repository)
        data = self._rest("GET", f"/repos/{o}/{n}/issues/{number}", "Fetch issue") or {}
        return (data.get("body") or "") if isinstance(data, dict) else ""

    def discover_projects(self, owner: str) -> List[Dict]:
        nodes: List[Dict] = []
        errors: List[str] = []
        for root, query in (("organization", GQL_LIST_ORG_PROJECTS), ("user", GQL_LIST_USER_PROJECTS)):
            try:
                data = self._graphql(query, {"login": owner}, f"Project discovery for {root}:{owner}")
            except RuntimeError as e:
                errors.append(str(e))
                continue
            nodes = ((data.get(root) or {}).get("projectsV2") or {}).get("nodes") or []
            if nodes:
                break
        if not nodes and len(errors) == 2:
            raise RuntimeError("; ".join(errors))
        return [n for n in nodes if isinstance(n, dict) and not n.get("closed")]
