TIME_UNITS = [("h", 3600), ("m", 60)]


def duration_to_str(value: int) -> str:
    if value < 60:
        return "-" if value < 0 else f"{value}s"

    parts = []

    for unit_str, unit_value in TIME_UNITS:
        amount = value // unit_value
        value -= amount * unit_value

        if amount:
            parts.append(f"{amount}{unit_str}")

    return " ".join(parts)


def host_to_platform(host: str) -> str:
    # "codeforces.com" -> "Codeforces", "naukri.com/code360" -> "Naukri"
    label = host.split("/")[0].split(".")[0]

    return label.capitalize() if label else host
