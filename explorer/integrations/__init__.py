from .github import GitHubClient, parse_pr_url, validate_pr_parameters, has_required_labels
