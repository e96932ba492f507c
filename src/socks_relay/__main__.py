from socks_relay.cmd.cli import app

app(prog_name="socks-relay")
