import datetime
import os


def manual_artifact_file_content(artifact, created_at=None):
    if created_at is None:
        created_at = datetime.datetime.now(datetime.timezone.utc)
    header_lines = [
        '/**',
        ' * %s (Manual Execution Required)' % artifact.title,
        ' * Created: %s' % created_at.isoformat(),
    ]
    if artifact.description:
        header_lines.append(' * Description: %s' % artifact.description)
    header_lines.extend(
        [
            ' *',
            ' * Run in: %s' % artifact.suggested_location,
            ' *',
            ' * INSTRUCTIONS:',
        ]
    )
    for step_number, step in enumerate(artifact.procedure, start=1):
        header_lines.append(' * %s. %s' % (step_number, step))
    header_lines.append(' */')
    return '%s\n\n%s\n\n// End of script\n' % (
        '\n'.join(header_lines),
        artifact.script.rstrip('\n'),
    )


def write_manual_artifact(artifact, scripts_directory):
    os.makedirs(scripts_directory, exist_ok=True)
    file_path = os.path.abspath(
        os.path.join(scripts_directory, artifact.suggested_file_name)
    )
    with open(file_path, 'w', encoding='utf-8') as script_file:
        script_file.write(manual_artifact_file_content(artifact))
    return file_path
