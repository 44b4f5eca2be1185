from __future__ import annotations

import shlex
from dataclasses import dataclass
from typing import Callable

from spuff_core.shared import first_line
from spuff_agent.devtools.types import InstallConfig


ShellRunner = Callable[[str], str]

BAT_VERSION = "0.24.0"
EZA_VERSION = "0.20.13"
NODE_MAJOR = "22"

AI_TOOL_PACKAGES = {
    "claude_code": ("@anthropic-ai/claude-code", "claude"),
    "codex": ("@openai/codex", "codex"),
    "opencode": ("opencode-ai", "opencode"),
}


@dataclass(frozen=True)
class StepRecipe:
    """Shell scripts for one tool: the install procedure and an optional version probe."""

    install_scripts: tuple[str, ...]
    version_probe: str | None = None
    fixed_version: str | None = None
    optional_scripts: tuple[str, ...] = ()


class StepSkipped(Exception):
    """Raised by a recipe builder when config leaves nothing to install for the tool."""


def _home(username: str) -> str:
    return f"/home/{username}"


def _as_user(username: str, script: str) -> str:
    return f"su - {shlex.quote(username)} -c {shlex.quote(script)}"


def docker_recipe(username: str, config: InstallConfig) -> StepRecipe:
    return StepRecipe(
        install_scripts=("curl -fsSL https://get.docker.com | sh",),
        optional_scripts=(f"usermod -aG docker {shlex.quote(username)}",),
        version_probe="docker --version 2>/dev/null | awk '{print $3}' | tr -d ','",
    )


def fzf_recipe(username: str, config: InstallConfig) -> StepRecipe:
    fzf_dir = f"{_home(username)}/.fzf"
    quoted_user = shlex.quote(username)
    return StepRecipe(
        install_scripts=(
            f"test -d {shlex.quote(fzf_dir)} || git clone --depth 1 https://github.com/junegunn/fzf.git {shlex.quote(fzf_dir)}",
            f"chown -R {quoted_user}:{quoted_user} {shlex.quote(fzf_dir)}",
            _as_user(username, "~/.fzf/install --all --no-update-rc"),
        ),
    )


def bat_recipe(username: str, config: InstallConfig) -> StepRecipe:
    deb = f"bat_{BAT_VERSION}_amd64.deb"
    return StepRecipe(
        install_scripts=(
            f"curl -fsSL -o /tmp/{deb} https://github.com/sharkdp/bat/releases/download/v{BAT_VERSION}/{deb}"
            f" && dpkg -i /tmp/{deb} && rm -f /tmp/{deb}",
        ),
        version_probe="bat --version | awk '{print $2}'",
    )


def eza_recipe(username: str, config: InstallConfig) -> StepRecipe:
    archive = "eza_x86_64-unknown-linux-gnu.zip"
    return StepRecipe(
        install_scripts=(
            f"curl -fsSL -o /tmp/{archive} https://github.com/eza-community/eza/releases/download/v{EZA_VERSION}/{archive}"
            f" && unzip -o /tmp/{archive} -d /usr/local/bin && chmod +x /usr/local/bin/eza && rm -f /tmp/{archive}",
        ),
        version_probe="eza --version | sed -n 2p | awk '{print $1}'",
    )


def zoxide_recipe(username: str, config: InstallConfig) -> StepRecipe:
    return StepRecipe(
        install_scripts=(
            "curl -sSfL https://raw.githubusercontent.com/ajeetdsouza/zoxide/main/install.sh | sh",
            "if [ -f ~/.local/bin/zoxide ]; then mv ~/.local/bin/zoxide /usr/local/bin/; fi",
        ),
        version_probe="zoxide --version | awk '{print $2}'",
    )


def starship_recipe(username: str, config: InstallConfig) -> StepRecipe:
    return StepRecipe(
        install_scripts=("curl -sS https://starship.rs/install.sh | sh -s -- -y",),
        version_probe="starship --version | head -1 | awk '{print $2}'",
    )


def nodejs_recipe(username: str, config: InstallConfig) -> StepRecipe:
    return StepRecipe(
        install_scripts=(
            f"curl -fsSL https://deb.nodesource.com/setup_{NODE_MAJOR}.x | bash -",
            "apt-get install -y nodejs",
        ),
        version_probe="node --version",
    )


def _ai_tool_recipe(tool_id: str) -> Callable[[str, InstallConfig], StepRecipe]:
    package, binary = AI_TOOL_PACKAGES[tool_id]

    def build(username: str, config: InstallConfig) -> StepRecipe:
        return StepRecipe(
            install_scripts=(f"npm install -g {shlex.quote(package)}",),
            version_probe=f"{binary} --version 2>/dev/null | head -1",
        )

    return build


def devenv_recipe(username: str, config: InstallConfig) -> StepRecipe:
    if config.environment == "devbox":
        return StepRecipe(
            install_scripts=("curl -fsSL https://get.jetify.com/devbox | bash -s -- -f",),
            version_probe=_as_user(username, "devbox version"),
        )
    if config.environment == "nix":
        bashrc = f"{_home(username)}/.bashrc"
        profile_line = ". /nix/var/nix/profiles/default/etc/profile.d/nix-daemon.sh"
        return StepRecipe(
            install_scripts=(
                "curl --proto '=https' --tlsv1.2 -sSf -L https://install.determinate.systems/nix"
                " | sh -s -- install --no-confirm",
                f"echo {shlex.quote(profile_line)} >> {shlex.quote(bashrc)}",
            ),
            fixed_version="nix",
        )
    raise StepSkipped(f"unsupported environment {config.environment!r}")


def dotfiles_recipe(username: str, config: InstallConfig) -> StepRecipe:
    if not config.dotfiles:
        raise StepSkipped("no dotfiles repository")
    run_installer = (
        "cd ~/.dotfiles && "
        "if [ -x ./install.sh ]; then ./install.sh; "
        "elif [ -x ./setup.sh ]; then ./setup.sh; fi"
    )
    return StepRecipe(
        install_scripts=(
            _as_user(username, f"git clone {shlex.quote(config.dotfiles)} ~/.dotfiles"),
            _as_user(username, run_installer),
        ),
    )


def tailscale_recipe(username: str, config: InstallConfig) -> StepRecipe:
    scripts = ["curl -fsSL https://tailscale.com/install.sh | sh"]
    if config.tailscale_authkey:
        scripts.append(f"tailscale up --authkey={shlex.quote(config.tailscale_authkey)}")
    return StepRecipe(
        install_scripts=tuple(scripts),
        version_probe="tailscale --version | head -1",
    )


RECIPES: dict[str, Callable[[str, InstallConfig], StepRecipe]] = {
    "docker": docker_recipe,
    "fzf": fzf_recipe,
    "bat": bat_recipe,
    "eza": eza_recipe,
    "zoxide": zoxide_recipe,
    "starship": starship_recipe,
    "nodejs": nodejs_recipe,
    "claude_code": _ai_tool_recipe("claude_code"),
    "codex": _ai_tool_recipe("codex"),
    "opencode": _ai_tool_recipe("opencode"),
    "devenv": devenv_recipe,
    "dotfiles": dotfiles_recipe,
    "tailscale": tailscale_recipe,
}


def probe_version(recipe: StepRecipe, run: ShellRunner) -> str | None:
    """Return the trimmed first line of the version probe, or ``None`` if it fails or is empty."""
    if recipe.fixed_version is not None:
        return recipe.fixed_version
    if recipe.version_probe is None:
        return None
    try:
        output = run(recipe.version_probe)
    except Exception:
        return None
    return first_line(output) or None
