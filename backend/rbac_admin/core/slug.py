def slugify(value: str) -> str:
    slug = []
    last_was_dash = False
    for char in value.strip().lower():
        if char.isalnum():
            slug.append(char)
            last_was_dash = False
        else:
            if not last_was_dash:
                slug.append("-")
                last_was_dash = True
    text = "".join(slug).strip("-")
    return text[:64] or "org"
