"""Raw profiler dumps and fake tool scripts shared by the tests."""

PERF_SCRIPT_OUTPUT = """\
python  4242 [001] 12345.000002:   10101010 cpu-clock:
        7f00aa02 do_work+0x12 (/usr/bin/python3.12)
        7f00aa00 main+0x21 (/usr/bin/python3.12)

python  4242 [001] 12345.000003:   10101010 cpu-clock:
        7f00aa02 do_work+0x12 (/usr/bin/python3.12)
        7f00aa00 main+0x21 (/usr/bin/python3.12)

python  4242 [001] 12345.000004:   10101010 cpu-clock:
        7f00aa00 main+0x21 (/usr/bin/python3.12)

"""

DTRACE_OUTPUT = """\

              libdyld.dylib`start+0x4
              app`main+0x20
              app`work+0x8
                7

"""


def fake_perf(log_file: str, dump_file: str, exit_code: int = 0, stderr: str = "") -> str:
    """`perf record` writes the data file, `perf script` prints the dump."""
    return f"""\
echo "$*" >> "{log_file}"
case "$1" in
  record)
    out=""
    while [ $# -gt 0 ]; do
      if [ "$1" = "-o" ]; then out="$2"; fi
      shift
    done
    echo "perf data" > "$out"
    ;;
  script)
    if [ -n "{stderr}" ]; then echo "{stderr}" >&2; fi
    if [ {exit_code} -ne 0 ]; then exit {exit_code}; fi
    cat "{dump_file}"
    ;;
esac
exit 0
"""


def fake_printer(log_file: str, dump_file: str) -> str:
    """Any tool that prints a saved dump and records how it was called."""
    return f"""\
echo "$*" >> "{log_file}"
cat "{dump_file}"
"""
