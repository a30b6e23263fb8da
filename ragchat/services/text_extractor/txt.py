def extract_text_from_txt_bytes(data: bytes, encoding: str = "utf-8") -> str:
    return data.decode(encoding, errors="replace")
