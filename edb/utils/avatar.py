import urllib.parse


def generate_default_avatar_url(first_name: str, last_name: str) -> str:
    name = f"{first_name} {last_name}".strip() or "EDB"
    return f"https://ui-avatars.com/api/?name={urllib.parse.quote_plus(name)}&background=0f3d63&color=fff&size=150"
