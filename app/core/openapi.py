"""
drf-spectacular postprocessing hook.

Endpoints defined in our own views set ``tags=`` in @extend_schema using
the ``<App> - <Group>`` pattern. dj-rest-auth endpoints cannot be
decorated, so this hook names and groups them after generation and
attaches descriptions to every tag.
"""

# operation_id -> (summary, description)
DJ_REST_AUTH_SUMMARIES = {
    "auth_login_create": ("Log in", "Exchange email and password for a JWT pair."),
    "auth_logout_create": ("Log out", "Blacklist the given refresh token."),
    "auth_registration_create": (
        "Register",
        "Create an account; a student profile is created automatically.",
    ),
    "auth_registration_resend_email_create": (
        "Resend verification email",
        "Send the account verification email again.",
    ),
    "auth_registration_verify_email_create": (
        "Verify email",
        "Confirm an email address with the key from the verification email.",
    ),
    "auth_user_retrieve": ("Get current user", "Account details of the caller."),
    "auth_user_update": ("Update current user", "Replace the caller's account details."),
    "auth_user_partial_update": ("Patch current user", "Change some of the caller's account details."),
    "auth_password_reset_create": ("Request password reset", "Email a password reset link."),
    "auth_password_reset_confirm_create": (
        "Confirm password reset",
        "Set a new password with the uid and token from the reset email.",
    ),
    "auth_password_change_create": ("Change password", "Change the caller's password."),
    "auth_token_refresh_create": ("Refresh access token", "Trade a refresh token for a new access token."),
    "auth_token_verify_create": ("Verify token", "Check that a token is valid."),
}

TAG_DESCRIPTIONS = {
    "Auth": "Login, logout, registration, password and token management.",
    "Auth - User": "Account of the current user.",
    "Auth - Profile": "Own profile, privacy settings and account deactivation.",
    "Auth - Directory": "Search and view other members' profiles, roles and class leaders.",
    "Social - Connections": "Connection requests between members.",
    "Social - Follows": "One-way follows.",
    "Social - Blocks": "Blocking members.",
    "Social - Hobbies": "Hobby catalogue and members' hobby lists.",
    "Posts": "Feed, posts with media, likes, saves, shares and pinning.",
    "Posts - Comments": "Comments on posts.",
    "Posts - Polls": "Poll voting and results.",
    "Chat - Conversations": "Direct and group conversations.",
    "Chat - Messages": "Messages, attachments and reactions.",
    "Chat - Participants": "Adding, removing and promoting group members.",
    "Chat - Read state": "Read watermarks, unread counts and read receipts.",
    "Chat - Groups": "Group discovery, join requests and rules.",
    "Chat - Shared files": "Attachments exchanged in your conversations.",
    "Notifications - Inbox": "In-app notifications and unread counts.",
    "Notifications - Preferences": "Per-channel delivery preferences.",
    "Notifications - Types": "Catalogue of notification types.",
    "Notifications - Devices": "Push device token registration.",
    "Notifications - Metrics": "Delivery success rates for administrators.",
    "Moderation": "User reports, incident reports and suspensions.",
    "Planner - Todos": "Personal to-do lists.",
    "Planner - Events": "Calendar events, applications and the expanded calendar.",
    "Planner - Announcements": "Announcements from teachers and administrators.",
}


def group_auth_endpoints(result, generator, request, public):
    """
    Postprocessing hook registered in SPECTACULAR_SETTINGS.

    Adds readable summaries to dj-rest-auth operations, files them under
    the Auth tags and publishes TAG_DESCRIPTIONS.
    """
    paths = result.get("paths", {})

    for methods in paths.values():
        for operation in methods.values():
            if not isinstance(operation, dict):
                continue

            operation_id = operation.get("operationId", "")

            if operation_id in DJ_REST_AUTH_SUMMARIES:
                summary, description = DJ_REST_AUTH_SUMMARIES[operation_id]
                operation["summary"] = summary
                operation["description"] = description

            if operation_id.startswith("auth_user_"):
                operation["tags"] = ["Auth - User"]
            elif operation_id in DJ_REST_AUTH_SUMMARIES or (
                operation_id.startswith("auth_") and not operation.get("tags", [""])[0].startswith("Auth -")
            ):
                operation["tags"] = ["Auth"]

    result["tags"] = [
        {"name": name, "description": description}
        for name, description in TAG_DESCRIPTIONS.items()
    ]
    return result
