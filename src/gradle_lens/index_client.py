from __future__ import annotations

import asyncio
import base64
import random
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Callable

import httpx

from gradle_lens.models import Coordinate, Key, Revision
from gradle_lens.versions import pick_latest_version

MAVEN_CENTRAL = "https://repo.maven.apache.org/maven2"

_POM_NS = "{http://maven.apache.org/POM/4.0.0}"


@dataclass(frozen=True, slots=True)
class RepositoryAuth:
    """
    私有仓库认证配置。
    """

    bearer_token: str | None = None
    basic_username: str | None = None
    basic_password: str | None = None


@dataclass(frozen=True, slots=True)
class RepositorySettings:
    """
    Maven 仓库查询配置。
    """

    urls: tuple[str, ...] = (MAVEN_CENTRAL,)
    timeout_s: float = 10.0
    retries: int = 2
    auth: RepositoryAuth | None = None


@dataclass(frozen=True, slots=True)
class ModuleLookupResult:
    """
    单个模块的查询结果（最新版本或错误信息）。
    """

    key: Key
    repository_url: str | None
    latest: str | None
    not_found: bool
    error: str | None


@dataclass(frozen=True, slots=True)
class PomInfo:
    """
    从 POM 中读取的项目主页与父 POM 坐标。
    """

    url: str | None
    parent: Coordinate | None


def _build_headers(auth: RepositoryAuth | None) -> dict[str, str]:
    """
    基于认证配置构造 HTTP Header。
    """
    headers: dict[str, str] = {"Accept": "application/xml, text/xml;q=0.9, */*;q=0.1"}
    if not auth:
        return headers

    if auth.bearer_token:
        headers["Authorization"] = f"Bearer {auth.bearer_token}"
        return headers

    if auth.basic_username is not None and auth.basic_password is not None:
        token = f"{auth.basic_username}:{auth.basic_password}".encode("utf-8")
        headers["Authorization"] = f"Basic {base64.b64encode(token).decode('ascii')}"
        return headers

    return headers


def _text(element: ET.Element | None) -> str | None:
    if element is None or element.text is None:
        return None
    value = element.text.strip()
    return value or None


def parse_metadata_versions(xml_text: str) -> list[str]:
    """
    从 maven-metadata.xml 中提取版本列表（含 <latest>/<release>），解析失败返回空列表。
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError:
        return []

    versions: list[str] = []
    versioning = root.find("versioning")
    if versioning is None:
        return versions
    for element in versioning.iterfind("versions/version"):
        value = _text(element)
        if value and value not in versions:
            versions.append(value)
    for tag in ("release", "latest"):
        value = _text(versioning.find(tag))
        if value and value not in versions:
            versions.append(value)
    return versions


def parse_pom(xml_text: str) -> PomInfo:
    """
    读取 POM 的 <url>（其次 <scm><url>）与 <parent> 坐标；兼容带/不带命名空间的 POM。
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError:
        return PomInfo(url=None, parent=None)

    ns = _POM_NS if root.tag.startswith(_POM_NS) else ""
    url = _text(root.find(f"{ns}url")) or _text(root.find(f"{ns}scm/{ns}url"))

    parent: Coordinate | None = None
    parent_el = root.find(f"{ns}parent")
    if parent_el is not None:
        group = _text(parent_el.find(f"{ns}groupId"))
        artifact = _text(parent_el.find(f"{ns}artifactId"))
        version = _text(parent_el.find(f"{ns}version"))
        if group and artifact and version:
            parent = Coordinate(group, artifact, version)
    return PomInfo(url=url, parent=parent)


async def request_text(
    client: httpx.AsyncClient,
    url: str,
    *,
    retries: int,
) -> tuple[str | None, int | None, str | None]:
    """
    请求文本并返回 (text, status_code, error)。
    """
    attempt = 0
    while True:
        try:
            resp = await client.get(url)
            if resp.status_code == 404:
                return None, 404, None
            if resp.status_code >= 400:
                return None, resp.status_code, f"http {resp.status_code}"
            return resp.text, resp.status_code, None
        except (httpx.TimeoutException, httpx.NetworkError) as exc:
            if attempt >= retries:
                return None, None, str(exc) or exc.__class__.__name__
            backoff = (2**attempt) * 0.25 + random.random() * 0.25
            attempt += 1
            await asyncio.sleep(backoff)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            return None, None, str(exc) or exc.__class__.__name__


def _module_path(group: str, artifact: str) -> str:
    return f"{group.replace('.', '/')}/{artifact}"


def build_metadata_url(repository_url: str, key: Key) -> str:
    """
    生成模块 maven-metadata.xml 的请求 URL。
    """
    return f"{repository_url.rstrip('/')}/{_module_path(key.group, key.artifact)}/maven-metadata.xml"


def build_pom_url(repository_url: str, coordinate: Coordinate) -> str:
    """
    生成指定版本 POM 文件的请求 URL。
    """
    base = f"{repository_url.rstrip('/')}/{_module_path(coordinate.group, coordinate.artifact)}"
    return f"{base}/{coordinate.version}/{coordinate.artifact}-{coordinate.version}.pom"


async def fetch_latest_from_repositories(
    key: Key,
    *,
    settings: RepositorySettings,
    client: httpx.AsyncClient,
    revision: Revision,
    accept: Callable[[str], bool] | None = None,
) -> ModuleLookupResult:
    """
    依次从所有仓库读取 maven-metadata.xml，合并版本后按修订级别选出最新版本。
    """
    last_error: str | None = None
    found_in: str | None = None
    candidates: list[str] = []

    for base in settings.urls:
        url = build_metadata_url(base, key)
        text, status, error = await request_text(client, url, retries=settings.retries)
        if status == 404:
            continue
        if text is None:
            last_error = error or "request failed"
            continue
        versions = parse_metadata_versions(text)
        if versions and found_in is None:
            found_in = base
        candidates.extend(v for v in versions if v not in candidates)

    if found_in is not None:
        latest = pick_latest_version(candidates, revision=revision, accept=accept)
        return ModuleLookupResult(
            key=key,
            repository_url=found_in,
            latest=latest,
            not_found=False,
            error=None if latest else f"no {revision} version found",
        )

    return ModuleLookupResult(
        key=key,
        repository_url=None,
        latest=None,
        not_found=last_error is None,
        error=last_error,
    )


async def fetch_pom(
    coordinate: Coordinate,
    *,
    settings: RepositorySettings,
    client: httpx.AsyncClient,
) -> PomInfo | None:
    """
    从第一个存在该 POM 的仓库读取并解析 POM；都不存在时返回 None。
    """
    for base in settings.urls:
        text, _status, _error = await request_text(client, build_pom_url(base, coordinate), retries=settings.retries)
        if text is not None:
            return parse_pom(text)
    return None


def create_async_client(settings: RepositorySettings) -> httpx.AsyncClient:
    """
    创建用于访问仓库与 Gradle 版本 API 的 AsyncClient。
    """
    headers = _build_headers(settings.auth)
    timeout = httpx.Timeout(settings.timeout_s)
    return httpx.AsyncClient(headers=headers, timeout=timeout, follow_redirects=True)
