import io
import os
import re

import requests
import streamlit as st

API_BASE = os.getenv("PDF_GATEWAY_API_BASE", os.getenv("API_BASE", "http://localhost:3000")).rstrip("/")
DEFAULT_API_KEY = os.getenv("PDF_GATEWAY_API_KEY", "")
REQUEST_TIMEOUT_SEC = float(os.getenv("PDF_GATEWAY_UI_TIMEOUT", "300"))

_FILENAME_RE = re.compile(r'filename="((?:\\"|[^"])*)"')


def _reset_state():
    for key in ["pdf_bytes", "pdf_name", "error"]:
        if key in st.session_state:
            del st.session_state[key]
    # Bump the uploader key to clear any previously uploaded file widget state
    if "upload_key" in st.session_state:
        st.session_state["upload_key"] += 1
    else:
        st.session_state["upload_key"] = 1


def _filename_from_disposition(value: str | None, fallback: str) -> str:
    if not value:
        return fallback
    m = _FILENAME_RE.search(value)
    if not m:
        return fallback
    return m.group(1).replace('\\"', '"')


def _error_message(resp: requests.Response) -> str:
    try:
        detail = resp.json().get("detail")
    except ValueError:
        return resp.text
    if isinstance(detail, dict):
        return str(detail.get("message", detail))
    return str(detail)


def _convert(uploaded_file: io.BytesIO, api_key: str) -> tuple[str, bytes] | None:
    headers = {"X-Api-Key": api_key} if api_key else {}
    files = {"file": (uploaded_file.name, uploaded_file.getvalue(), uploaded_file.type or "application/octet-stream")}
    try:
        resp = requests.post(f"{API_BASE}/convert", files=files, headers=headers, timeout=REQUEST_TIMEOUT_SEC)
    except requests.RequestException as e:
        st.session_state["error"] = f"Failed to connect to API: {e}"
        return None
    if resp.status_code != 200:
        st.session_state["error"] = f"Conversion failed: {resp.status_code} {_error_message(resp)}"
        return None
    stem = uploaded_file.name.rsplit(".", 1)[0] or "output"
    name = _filename_from_disposition(resp.headers.get("Content-Disposition"), f"{stem}.pdf")
    return name, resp.content


def main() -> None:
    st.set_page_config(page_title="PDF Gateway", page_icon="📄", layout="centered")
    st.title("📄 PDF Gateway")
    st.caption(f"API base: {API_BASE}")

    if st.button("Restart", type="secondary"):
        _reset_state()
        st.rerun()

    api_key = st.text_input("API key", value=DEFAULT_API_KEY, type="password", help="Leave empty if the server has no key configured.")

    # Use a dynamic key so that restarting bumps the key and clears the previous upload
    if "upload_key" not in st.session_state:
        st.session_state["upload_key"] = 0
    uploaded = st.file_uploader(
        "Upload a document (DOCX, XLSX, PPTX, ODT, etc.)",
        type=["doc", "docx", "odt", "rtf", "xls", "xlsx", "ods", "ppt", "pptx", "odp"],  # type: ignore[arg-type]
        key=f"uploader-{st.session_state['upload_key']}",
    )

    if uploaded and "pdf_bytes" not in st.session_state and st.button("Convert to PDF", type="primary"):
        st.session_state.pop("error", None)
        with st.spinner("Uploading and converting..."):
            res = _convert(uploaded, api_key)
        if res:
            st.session_state["pdf_name"], st.session_state["pdf_bytes"] = res
            st.toast("Conversion complete", icon="✅")

    if "pdf_bytes" in st.session_state:
        st.success("Conversion complete!")
        st.download_button(
            label="Download PDF",
            data=st.session_state["pdf_bytes"],
            file_name=st.session_state["pdf_name"],
            mime="application/pdf",
        )

    if err := st.session_state.get("error"):
        st.error(err)


if __name__ == "__main__":
    main()
