from doit.models.user import User
from doit.models.oauth_token import OAuthToken
from doit.models.todo import Todo
from doit.models.tag import Tag
from doit.models.setting import Setting
from doit.models.jira_issue import JiraIssue

__all__ = ["User", "OAuthToken", "Todo", "Tag", "Setting", "JiraIssue"]
